"""
Core Utilities

Common utility functions used across the RBAC reconciler.
"""

import logging
import re
from typing import Type

import urllib3
from kubernetes.client.rest import ApiException

from .exceptions import AuthenticationError, RBACReconcilerError


def setup_logging(debug: bool = False) -> None:
    """
    Set up logging configuration for the application.

    Args:
        debug: Enable debug logging level
    """
    level = logging.DEBUG if debug else logging.INFO

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from urllib3 when using insecure connections
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    if debug:
        logger = logging.getLogger(__name__)
        logger.debug("Debug mode enabled")


def disable_ssl_warnings() -> None:
    """Disable SSL warnings when --skip-tls is used"""
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


def mask_sensitive_info(text: str, token: str = None) -> str:
    """
    Mask tokens in text for logging and debug output.

    Args:
        text: Text to mask
        token: Token to mask (optional)

    Returns:
        Text with sensitive information masked
    """
    if not text:
        return text

    masked_text = text
    if token and token in masked_text:
        if '~' in token:
            prefix = token.split('~')[0] + '~'
            masked_text = masked_text.replace(token, prefix + "***MASKED***")
        else:
            masked_text = masked_text.replace(token, "***MASKED***")

    masked_text = re.sub(r'Bearer [A-Za-z0-9+/=_-]+', 'Bearer ***MASKED***', masked_text)
    masked_text = re.sub(r'sha256~[A-Za-z0-9_-]+', 'sha256~***MASKED***', masked_text)
    return masked_text


def is_not_found(error: Exception) -> bool:
    """True if error is a Kubernetes 404"""
    return isinstance(error, ApiException) and error.status == 404


def is_already_exists(error: Exception) -> bool:
    """True if error is a Kubernetes 409 returned by a create call"""
    return isinstance(error, ApiException) and error.status == 409


def handle_api_error(error: Exception, context: str,
                     exception_class: Type[RBACReconcilerError] = RBACReconcilerError) -> None:
    """
    Centralized API error handling for Kubernetes API exceptions

    Args:
        error: The caught exception (ApiException or other)
        context: What was being attempted, for the message
        exception_class: The specific exception class to raise

    Raises:
        RBACReconcilerError: Appropriate error type with user-friendly message
    """
    status = getattr(error, 'status', None)

    if status == 401:
        raise AuthenticationError(
            f"{context}: Unauthorized (401). Verify that the token is valid and has permissions."
        ) from error

    if status == 403:
        raise exception_class(
            f"{context}: Forbidden (403). The operator service account lacks the RBAC "
            f"permissions needed for this call."
        ) from error

    raise exception_class(f"{context}: {error}") from error
