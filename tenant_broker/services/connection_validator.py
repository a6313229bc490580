"""
Connection Validator
Format checks for connection parameters and readable messages for connection failures
"""

from typing import Any, Optional

from pydantic import ValidationError

from tenant_broker.schemas.tenant import ConnectionParams, ValidationResult


# MySQL client/server error codes
ER_ACCESS_DENIED_ERROR = 1045
ER_BAD_DB_ERROR = 1049
CR_CONN_HOST_ERROR = 2003
CR_UNKNOWN_HOST = 2005


def validate_connection_params(
    host: Optional[str],
    port: Any,
    username: Optional[str],
    password: Optional[str]
) -> ValidationResult:
    """
    Validate connection parameters without connecting.

    Every field is checked; all problems are reported at once.

    Example:
        >>> validate_connection_params("db.example.com", "3306", "app", "secret").valid
        True
        >>> validate_connection_params("", "99999", "app", "").errors
        ['Host is required', 'Port must be a number between 1 and 65535', 'Password is required']
    """
    try:
        ConnectionParams(host=host, port=port, username=username, password=password)
    except ValidationError as e:
        return ValidationResult(valid=False, errors=[_error_message(err) for err in e.errors()])
    return ValidationResult(valid=True)


def _error_message(error: dict) -> str:
    ctx_error = error.get("ctx", {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    return error.get("msg", "Invalid value")


def _error_code(error: BaseException) -> Optional[int]:
    orig = getattr(error, "orig", None) or error
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def friendly_connection_error(error: BaseException, database_name: str) -> str:
    """
    Translate a driver/network failure into a message an administrator can act on.

    Args:
        error: Exception raised while connecting (possibly wrapped)
        database_name: Database that was being reached
    """
    cause = error.__cause__ or error
    code = _error_code(cause)
    text = f"{error} {cause}".lower()

    if "timeout" in text or "timed out" in text:
        return "Connection timed out. Check that the server is reachable and the host/port are correct"
    if code == CR_UNKNOWN_HOST or "getaddrinfo" in text or "unknown mysql server host" in text \
            or "name or service not known" in text:
        return "Host not found. Check the server address"
    if code == ER_ACCESS_DENIED_ERROR or "access denied" in text:
        return "Access denied. Check the username and password"
    if code == ER_BAD_DB_ERROR or "unknown database" in text:
        return f"Database '{database_name}' not found. Check that it exists on the server"
    if code == CR_CONN_HOST_ERROR or "refused" in text:
        return "Connection refused. Check that the MySQL server is running and the port is correct"
    if "connect" in text:
        return "Could not connect to the server. Check the credentials and network connectivity"
    return "Could not establish a connection to the database"
