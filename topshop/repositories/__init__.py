from topshop.repositories.activities import ContentGenRequestsRepository, SyncActivitiesRepository
from topshop.repositories.oauth_states import OAuthStatesRepository
from topshop.repositories.posts import PostsRepository, PostStats
from topshop.repositories.projects import ProjectNotFoundError, ProjectsRepository
from topshop.repositories.stores import ConnectionRepository, StoresRepository
from topshop.repositories.users import AuthorsRepository, UsersRepository

__all__ = [
    "AuthorsRepository",
    "ConnectionRepository",
    "ContentGenRequestsRepository",
    "OAuthStatesRepository",
    "PostStats",
    "PostsRepository",
    "ProjectNotFoundError",
    "ProjectsRepository",
    "StoresRepository",
    "SyncActivitiesRepository",
    "UsersRepository",
]
