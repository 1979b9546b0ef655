from dependency_injector import containers, providers

from app.repos.account import AccountRepo
from app.repos.owner import OwnerRepo
from app.repos.relay_log import RelayLogRepo


class RepoContainer(containers.DeclarativeContainer):
    account = providers.Singleton(AccountRepo)
    owner = providers.Singleton(OwnerRepo)
    relay_log = providers.Singleton(RelayLogRepo)
