"""
OAuth bridge package.

PROVIDERS maps the path segment in ``/oauth/<provider>`` to its flow class;
create_providers() instantiates every configured provider against one
key/value store.
"""

from kv import KeyValueStore
from oauth.base import AuthorizationPage, CallbackOutcome, OAuthProvider, OAuthStage
from oauth.credentials import get_user_credentials, save_user_credentials
from oauth.google import GoogleOAuthProvider
from oauth.notion import NotionOAuthProvider
from oauth.state import issue_state, verify_state

PROVIDERS = {
    GoogleOAuthProvider.name: GoogleOAuthProvider,
    NotionOAuthProvider.name: NotionOAuthProvider,
}


def create_providers(profile, store: KeyValueStore, **kwargs) -> dict[str, OAuthProvider]:
    """Build one provider instance per entry in PROVIDERS.

    Providers without a client id are still created; their authorization
    request fails closed with an error page.
    """
    providers = {}
    for name, cls in PROVIDERS.items():
        providers[name] = cls(profile.get_provider(name), store, **kwargs)
    return providers


__all__ = [
    "AuthorizationPage", "CallbackOutcome", "GoogleOAuthProvider", "NotionOAuthProvider",
    "OAuthProvider", "OAuthStage", "PROVIDERS", "create_providers",
    "get_user_credentials", "issue_state", "save_user_credentials", "verify_state",
]
