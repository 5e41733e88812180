"""Shared HTTP timeout defaults."""

# API calls (create, part URLs, complete, abort)
DEFAULT_HTTP_TIMEOUT_SECONDS = 30

# Single part PUT; parts can be several GiB on slow links
DEFAULT_TRANSFER_TIMEOUT_SECONDS = 6 * 60 * 60

# Upper bound per session for the best-effort abort request on shutdown
DEFAULT_ABORT_TIMEOUT_SECONDS = 5

# How long in-flight transfers may keep running after cancellation
DEFAULT_SHUTDOWN_GRACE_SECONDS = 10
