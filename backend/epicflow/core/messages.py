FORBIDDEN = "You are not permitted to access this resource"
UNAUTHORIZED = "Unauthorized"
PERMISSION_DENIED = "Permission denied"
INVALID_CREDENTIALS = "Invalid username or password"
INVALID_SESSION = "Session is invalid, check your session code again or login again"
INVALID_USER = "User with the specified email and or password is not found"
SESSION_CODE_SENT = "We have sent you the 6 digit code via email"
SESSION_REVOKED = "User has been logged out and session is now invalid"
EMAIL_TAKEN = "Email is already used"


def not_found(entity: str) -> str:
    return f"{entity} not found"


def delete_message(success: bool, entity: str) -> str:
    if success:
        return f"{entity} deleted successfully"
    return f"Failed to delete {entity.lower()}, it does not exist or is already deleted"
