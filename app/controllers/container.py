from typing import cast

from dependency_injector import containers, providers

from app.controllers.google.client import GoogleAPIClient
from app.controllers.google.history_synchronizer import HistorySynchronizer
from app.controllers.google.token_provider import TokenProvider
from app.controllers.google.watch_registrar import WatchRegistrar
from app.controllers.grant.authorization_controller import AuthorizationController
from app.controllers.grant.watch_renewal_controller import WatchRenewalController
from app.controllers.notification.notification_controller import NotificationController
from app.controllers.relay.relay_controller import RelayController
from app.repos.container import RepoContainer
from app.utils.oauth_state import OAuthStateSigner
from app.utils.token_cipher import TokenCipher
from settings import settings


class ControllerContainer(containers.DeclarativeContainer):
    repos: RepoContainer = cast(RepoContainer, providers.DependenciesContainer())
    config = providers.Object(settings)

    google_client = providers.Singleton(
        GoogleAPIClient,
        timeout=config.provided.google.timeout,
        max_retries=config.provided.google.max_retries,
        retry_base_delay=config.provided.google.retry_base_delay,
    )
    token_cipher = providers.Singleton(TokenCipher, key=config.provided.token_encryption_key)
    state_signer = providers.Singleton(
        OAuthStateSigner, secret=config.provided.oauth_state.secret, max_age=config.provided.oauth_state.max_age
    )

    token_provider = providers.Singleton(
        TokenProvider, google_client=google_client, credentials=config.provided.mailbox_oauth
    )
    watch_registrar = providers.Singleton(
        WatchRegistrar,
        google_client=google_client,
        topic=config.provided.google.pubsub_topic,
        label=config.provided.google.watch_label,
    )
    history_synchronizer = providers.Singleton(
        HistorySynchronizer, google_client=google_client, label=config.provided.google.watch_label
    )
    relay_controller = providers.Singleton(
        RelayController,
        relay_log_repo=repos.relay_log,
        webhook_url=config.provided.relay.webhook_url,
        timeout=config.provided.relay.timeout,
    )

    authorization_controller = providers.Singleton(
        AuthorizationController,
        owner_repo=repos.owner,
        account_repo=repos.account,
        token_provider=token_provider,
        watch_registrar=watch_registrar,
        token_cipher=token_cipher,
        state_signer=state_signer,
        redirects=config.provided.redirects,
    )
    notification_controller = providers.Singleton(
        NotificationController,
        account_repo=repos.account,
        token_provider=token_provider,
        watch_registrar=watch_registrar,
        history_synchronizer=history_synchronizer,
        relay_controller=relay_controller,
        token_cipher=token_cipher,
        config=config.provided.notifications,
    )
    watch_renewal_controller = providers.Singleton(
        WatchRenewalController,
        account_repo=repos.account,
        token_provider=token_provider,
        watch_registrar=watch_registrar,
        token_cipher=token_cipher,
    )
