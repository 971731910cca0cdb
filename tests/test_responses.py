from ipaddress import IPv4Address

import pytest

from hirn_login.portal import (
    AuthenticationFailed,
    ParseError,
    UnexpectedResponse,
    check_login_response,
    check_logout_response,
    extract_local_ip,
    mask_value,
)

from pages import NOT_IN_HIRN_PAGE, status_page


@pytest.mark.parametrize("ip", ["192.168.1.42", "10.0.0.1", "134.147.0.255", "0.0.0.0"])
def test_extract_local_ip(ip):
    assert extract_local_ip(status_page(ip)) == IPv4Address(ip)


def test_extract_local_ip_takes_first_ipaddr_field():
    text = status_page("10.1.1.1") + status_page("10.2.2.2")
    assert extract_local_ip(text) == IPv4Address("10.1.1.1")


def test_not_in_hirn_wins_over_ip_field():
    text = NOT_IN_HIRN_PAGE + status_page("192.168.1.42")
    assert extract_local_ip(text) is None


def test_missing_ip_field_is_parse_error():
    with pytest.raises(ParseError):
        extract_local_ip("<html><body>Wartung</body></html>")


def test_unterminated_ip_value_is_parse_error():
    with pytest.raises(ParseError):
        extract_local_ip('<input name="ipaddr" value="192.168.1.42')


@pytest.mark.parametrize("value", ["", "300.1.1.1", "192.168.1", "::1", "not-an-ip"])
def test_invalid_ip_is_parse_error(value):
    with pytest.raises(ParseError) as excinfo:
        extract_local_ip(status_page(value))
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_login_success():
    check_login_response("<p>Authentisierung gelungen</p>")


def test_login_success_checked_before_failure():
    check_login_response("Authentisierung gelungen ... Authentisierung fehlgeschlagen")


def test_login_failure():
    with pytest.raises(AuthenticationFailed):
        check_login_response("<p>Authentisierung fehlgeschlagen</p>")


def test_login_unexpected():
    with pytest.raises(UnexpectedResponse) as excinfo:
        check_login_response("<p>Internal Server Error</p>", 500)
    assert excinfo.value.status_code == 500
    assert "status=500" in str(excinfo.value)


def test_login_markers_are_case_sensitive():
    with pytest.raises(UnexpectedResponse):
        check_login_response("authentisierung gelungen")


def test_logout_success():
    check_logout_response("<p>Logout erfolgreich</p>")


def test_logout_failure_reuses_auth_message():
    with pytest.raises(AuthenticationFailed):
        check_logout_response("<p>Authentisierung fehlgeschlagen</p>")


def test_logout_does_not_accept_login_success():
    with pytest.raises(UnexpectedResponse):
        check_logout_response("<p>Authentisierung gelungen</p>")


@pytest.mark.parametrize(
    "value, expected",
    [("", ""), ("abc", "***"), ("alice", "al***ce"), ("mustermann", "mu***nn")],
)
def test_mask_value(value, expected):
    assert mask_value(value) == expected
