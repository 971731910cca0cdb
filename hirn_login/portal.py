import logging
from ipaddress import IPv4Address
from typing import Dict, Optional, Union

import requests

LOGIN_PORTAL_URL = "https://login.ruhr-uni-bochum.de/cgi-bin/start"
LOGIN_URL = "https://login.ruhr-uni-bochum.de/cgi-bin/laklogin"

NOT_IN_HIRN_MARKER = "befinden sich an einem Arbeitsplatz der nicht Lock-And-Key"
IP_START_MARKER = 'name="ipaddr" value="'
IP_END_MARKER = '"'
LOGIN_SUCCESS_MARKER = "Authentisierung gelungen"
AUTH_FAILED_MARKER = "Authentisierung fehlgeschlagen"
LOGOUT_SUCCESS_MARKER = "Logout erfolgreich"

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base class for everything the portal client raises."""


class TransportError(PortalError):
    def __init__(self, url: str, stage: str) -> None:
        self.url = url
        self.stage = stage
        if stage == "read":
            message = f"failed to read response from {url}"
        else:
            message = f"failed to send request to {url}"
        super().__init__(message)


class ParseError(PortalError):
    """The portal page no longer looks the way we expect it to."""


class AuthenticationFailed(PortalError):
    def __init__(self) -> None:
        super().__init__("Authentication failed")


class UnexpectedResponse(PortalError):
    def __init__(self, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        message = "Unexpected response"
        if status_code is not None:
            message = f"{message} (status={status_code})"
        super().__init__(message)


def mask_value(value: str, keep: int = 2) -> str:
    if not value:
        return ""
    if len(value) <= keep * 2:
        return "*" * len(value)
    return f"{value[:keep]}***{value[-keep:]}"


def extract_local_ip(text: str) -> Optional[IPv4Address]:
    """Return the ip the status page reports for us.

    ``None`` means the request came from outside HIRN, which is not an error.
    Raises ParseError when the ipaddr input cannot be found or parsed.
    """
    if NOT_IN_HIRN_MARKER in text:
        logger.debug("Not inside HIRN")
        return None

    start = text.find(IP_START_MARKER)
    if start == -1:
        raise ParseError("failed to extract ip from response: ipaddr field not found")
    start += len(IP_START_MARKER)
    end = text.find(IP_END_MARKER, start)
    if end == -1:
        raise ParseError("failed to extract ip from response: unterminated ipaddr value")

    value = text[start:end]
    try:
        return IPv4Address(value)
    except ValueError as exc:
        raise ParseError(f"failed to parse the ip {value!r}") from exc


def check_login_response(text: str, status_code: Optional[int] = None) -> None:
    # Success is checked first, the page may mention both phrases.
    if LOGIN_SUCCESS_MARKER in text:
        return
    if AUTH_FAILED_MARKER in text:
        raise AuthenticationFailed()
    raise UnexpectedResponse(status_code)


def check_logout_response(text: str, status_code: Optional[int] = None) -> None:
    if LOGOUT_SUCCESS_MARKER in text:
        return
    # The portal answers a failed logout with its authentication error page.
    if AUTH_FAILED_MARKER in text:
        raise AuthenticationFailed()
    raise UnexpectedResponse(status_code)


def build_form(loginid: str, password: str, ip: IPv4Address, action: str) -> Dict[str, str]:
    return {
        "code": "1",
        "loginid": loginid,
        "password": password,
        "ipaddr": str(ip),
        "action": action,
    }


class PortalClient:
    """Talks to the Lock-And-Key portal over a caller-owned session."""

    def __init__(
        self,
        session: requests.Session,
        status_url: str = LOGIN_PORTAL_URL,
        login_url: str = LOGIN_URL,
        timeout: Optional[Union[int, float]] = None,
    ) -> None:
        self.session = session
        self.status_url = status_url
        self.login_url = login_url
        self.timeout = timeout

    def _fetch(self, method: str, url: str, data: Optional[Dict[str, str]] = None) -> requests.Response:
        try:
            response = self.session.request(
                method,
                url,
                data=data,
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            raise TransportError(url, "send") from exc

        try:
            response.content
        except requests.RequestException as exc:
            raise TransportError(url, "read") from exc
        finally:
            response.close()
        return response

    def find_local_ip(self) -> Optional[IPv4Address]:
        response = self._fetch("GET", self.status_url)
        ip = extract_local_ip(response.text)
        if ip is not None:
            logger.debug("Determined local ip=%s", ip)
        return ip

    def resolve_ip(self, ip: Optional[IPv4Address]) -> Optional[IPv4Address]:
        """Use ``ip`` when given, otherwise ask the status page."""
        if ip is not None:
            return ip
        return self.find_local_ip()

    def login(self, username: str, password: str, ip: IPv4Address) -> None:
        logger.debug("Logging in user=%s ip=%s", mask_value(username), ip)
        form = build_form(username, password, ip, "Login")
        response = self._fetch("POST", self.login_url, data=form)
        check_login_response(response.text, response.status_code)
        logger.debug("Login accepted ip=%s", ip)

    def logout(self, ip: IPv4Address) -> None:
        logger.debug("Logging out ip=%s", ip)
        form = build_form("", "", ip, "Logout")
        response = self._fetch("POST", self.login_url, data=form)
        check_logout_response(response.text, response.status_code)
        logger.debug("Logout accepted ip=%s", ip)
