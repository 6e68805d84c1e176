"""
Unit tests for response envelope - critical for consistent API responses
"""

import json

from utils.error_codes import ErrorCode, ERROR_MESSAGES
from utils.exceptions import (
    AuthorizationError,
    CommentServiceError,
    InvalidPlatformError,
    RateLimitError,
    SecurityRejection,
    UpstreamTimeout,
    ValidationError,
)
from utils.response_envelope import (
    error_json_response,
    format_error_response,
    format_success_response,
    internal_error_response,
)


class TestResponseEnvelope:
    """Test global response formatting"""

    def test_success_response_format(self):
        """
        Business Critical: Success responses must follow consistent envelope format
        """
        body = format_success_response([{"id": "123"}], pagination={"limit": 20})

        assert body == {"success": True, "data": [{"id": "123"}], "pagination": {"limit": 20}}

    def test_success_response_drops_absent_fields(self):
        body = format_success_response(None, statistics=None, platform="instagram")

        assert body == {"success": True, "platform": "instagram"}

    def test_success_response_keeps_empty_data(self):
        assert format_success_response([])["data"] == []

    def test_error_response_format(self):
        """
        Business Critical: Error envelope is {success: false, error, details?}
        """
        assert format_error_response("Invalid platform") == {"success": False, "error": "Invalid platform"}

    def test_error_response_merges_extra_fields(self):
        body = format_error_response("Invalid platform", {"field": "platform"}, valid_platforms=["instagram"])

        assert body["details"] == {"field": "platform"}
        assert body["valid_platforms"] == ["instagram"]

    def test_service_error_rendering(self):
        """
        Business Critical: Taxonomy errors render with their status and machine code
        """
        response = error_json_response(ValidationError("Invalid parameter: limit", details={"field": "limit"}))
        body = json.loads(response.body)

        assert response.status_code == 400
        assert body == {
            "success": False,
            "error": "Invalid parameter: limit",
            "details": {"field": "limit", "code": "VALIDATION_INVALID_INPUT"},
        }

    def test_invalid_platform_rendering(self):
        body = json.loads(error_json_response(InvalidPlatformError("myspace", ["instagram", "tiktok"])).body)

        assert body["error"] == "Invalid platform"
        assert body["valid_platforms"] == ["instagram", "tiktok"]

    def test_rate_limit_rendering_carries_headers(self):
        response = error_json_response(RateLimitError(
            "Rate limit exceeded",
            extra={"retryAfter": 12},
            headers={"Retry-After": "12"},
        ))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "12"
        assert json.loads(response.body)["retryAfter"] == 12

    def test_internal_error_hides_details_outside_debug(self):
        """
        Business Critical: Generic exceptions must not leak details in production
        """
        hidden = json.loads(internal_error_response(ValueError("db password=hunter2")).body)
        shown = json.loads(internal_error_response(ValueError("boom"), debug=True).body)

        assert hidden == {"success": False, "error": "Internal server error", "details": {"code": "SYSTEM_INTERNAL_ERROR"}}
        assert "boom" in shown["details"]["exception"]


class TestErrorTaxonomy:
    """Test structured error code system"""

    def test_every_code_has_a_default_message(self):
        assert set(ERROR_MESSAGES) == set(ErrorCode)

    def test_status_codes(self):
        """
        Business Critical: Each error class maps to its documented HTTP status
        """
        assert ValidationError().status_code == 400
        assert SecurityRejection("").status_code == 400
        assert AuthorizationError().status_code == 403
        assert RateLimitError().status_code == 429
        assert UpstreamTimeout().status_code == 500
        assert CommentServiceError().status_code == 500

    def test_default_messages(self):
        assert RateLimitError().message == "Rate limit exceeded"
        assert SecurityRejection("x").message == "Invalid search query detected"

    def test_timeout_message_is_distinguishable(self):
        assert UpstreamTimeout("Search request timed out").message != CommentServiceError().message
