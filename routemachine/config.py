"""
Router options.

Options are validated when the router is built; an unknown option or a value
of the wrong type fails immediately with RouterConfigurationError. Both the
snake_case field names and the camelCase aliases are accepted::

    Router({"csrfTokenExpireTime": 600, "csrfAllowedReferers": ["example.com"]})
    Router(RouterOptions(csrf_token_expire_time=600))
"""

from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import RouterConfigurationError


class RouterOptions(BaseModel):
    """Validated router configuration."""

    model_config = ConfigDict(
        extra="forbid",
        strict=True,
        frozen=True,
        populate_by_name=True,
    )

    csrf_token_expire_time: int = Field(
        3600,
        alias="csrfTokenExpireTime",
        gt=0,
        description="Lifetime of a CSRF token in seconds",
    )

    csrf_allowed_referers: List[str] = Field(
        default_factory=list,
        alias="csrfAllowedReferers",
        description="Referer hosts accepted on CSRF protected routes",
    )

    csrf_field_name: str = Field(
        "csrf_token",
        alias="csrfFieldName",
        min_length=1,
        description="Form field carrying the submitted CSRF token",
    )

    csrf_cookie_name: str = Field(
        "csrf_token",
        alias="csrfCookieName",
        min_length=1,
        description="Cookie mirroring the CSRF token",
    )

    csrf_cookie_secure: bool = Field(
        True,
        alias="csrfCookieSecure",
        description="Send the CSRF cookie with the Secure attribute",
    )

    @field_validator("csrf_allowed_referers")
    @classmethod
    def _lowercase_hosts(cls, hosts: List[str]) -> List[str]:
        return [host.lower() for host in hosts]

    @classmethod
    def from_value(cls, options: Optional[Union["RouterOptions", Mapping[str, Any]]]) -> "RouterOptions":
        """Build options from None, an existing instance or a mapping.

        Raises:
            RouterConfigurationError: On unknown options or invalid values
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise RouterConfigurationError(
                f"Router options must be a mapping, got {type(options).__name__}"
            )
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            errors = e.errors(include_url=False)
            message = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in errors
            )
            raise RouterConfigurationError(f"Invalid router options: {message}", errors) from e
