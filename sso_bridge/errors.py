"""
Failure taxonomy for the SSO flows. Every failure is terminal for the request;
the flow controllers map each class to exactly one HTTP outcome.
"""


class SSOError(Exception):
    """Base class. `message` is safe to show to the caller."""

    status_code = 400
    message = "SSO request failed"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class MalformedRequest(SSOError):
    status_code = 400
    message = "SSO and signature are required and must not be arrays"


class SignatureInvalid(SSOError):
    status_code = 400
    message = "Unable to verify signature"


class NotAuthenticated(SSOError):
    """No Ghost member session. Surfaces as a redirect to the login page, never as an error body."""

    message = "Not logged in"


class InvalidProof(SSOError):
    """Member identity token rejected. `context` carries the verifier's reason, if any."""

    status_code = 401
    message = "Client Error: Invalid JWT provided to prove membership"

    def __init__(self, context: str | None = None):
        self.context = context
        super().__init__(f"{self.message}\nContext: {context}" if context else None)


class MissingProof(InvalidProof):
    message = "Client Error: Missing JWT to prove membership"


class MemberNotFound(SSOError):
    status_code = 404
    message = "Unable to authenticate member"


class UpstreamUnavailable(SSOError):
    status_code = 500
    message = "Unable to get your member information"
