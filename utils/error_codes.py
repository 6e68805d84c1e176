"""
Standard error code taxonomy
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes"""

    # Authentication & Authorization
    AUTH_TOKEN_MISSING = "AUTH_TOKEN_MISSING"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_INSUFFICIENT_PERMISSIONS"

    # Data Validation
    VALIDATION_INVALID_INPUT = "VALIDATION_INVALID_INPUT"
    VALIDATION_MISSING_FIELD = "VALIDATION_MISSING_FIELD"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
    VALIDATION_INVALID_PLATFORM = "VALIDATION_INVALID_PLATFORM"

    # Security
    SECURITY_MALICIOUS_INPUT = "SECURITY_MALICIOUS_INPUT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Resource Management
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ACCESS_DENIED = "RESOURCE_ACCESS_DENIED"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"

    # External Services
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    EXTERNAL_SERVICE_UNAVAILABLE = "EXTERNAL_SERVICE_UNAVAILABLE"

    # System Errors
    SYSTEM_DATABASE_ERROR = "SYSTEM_DATABASE_ERROR"
    SYSTEM_DECRYPTION_ERROR = "SYSTEM_DECRYPTION_ERROR"
    SYSTEM_INTERNAL_ERROR = "SYSTEM_INTERNAL_ERROR"


ERROR_MESSAGES = {
    ErrorCode.AUTH_TOKEN_MISSING: "Authentication required",
    ErrorCode.AUTH_TOKEN_INVALID: "Invalid authentication",
    ErrorCode.AUTH_TOKEN_EXPIRED: "Authentication token has expired",
    ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS: "Insufficient permissions for this operation",

    ErrorCode.VALIDATION_INVALID_INPUT: "Invalid parameter",
    ErrorCode.VALIDATION_MISSING_FIELD: "Required field is missing",
    ErrorCode.VALIDATION_INVALID_FORMAT: "Invalid data format",
    ErrorCode.VALIDATION_INVALID_PLATFORM: "Invalid platform",

    ErrorCode.SECURITY_MALICIOUS_INPUT: "Invalid search query detected",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Rate limit exceeded",

    ErrorCode.RESOURCE_NOT_FOUND: "Requested resource was not found",
    ErrorCode.RESOURCE_ACCESS_DENIED: "Access to resource is denied",
    ErrorCode.RESOURCE_CONFLICT: "Resource already exists",

    ErrorCode.UPSTREAM_TIMEOUT: "Request timed out",
    ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE: "External service is unavailable",

    ErrorCode.SYSTEM_DATABASE_ERROR: "Database operation failed",
    ErrorCode.SYSTEM_DECRYPTION_ERROR: "Failed to decrypt stored data",
    ErrorCode.SYSTEM_INTERNAL_ERROR: "Internal server error"
}
