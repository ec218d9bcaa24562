from oauth.activities import SignInActivityKind, classify, extract_magic_code
from oauth.authorization import Authorization, SignInResult
from oauth.cards import OAUTH_CARD_CONTENT_TYPE, oauth_card
from oauth.errors import AuthConfigurationError, OAuthError, TokenServiceError
from oauth.flow import OAuthFlow
from oauth.sign_in_context import AuthHandler, SignInContext
from oauth.sign_in_storage import SignInStorage
from oauth.token_client import UserTokenClient

__all__ = [
    "AuthConfigurationError", "AuthHandler", "Authorization", "OAUTH_CARD_CONTENT_TYPE",
    "OAuthError", "OAuthFlow", "SignInActivityKind", "SignInContext", "SignInResult",
    "SignInStorage", "TokenServiceError", "UserTokenClient", "classify",
    "extract_magic_code", "oauth_card",
]
