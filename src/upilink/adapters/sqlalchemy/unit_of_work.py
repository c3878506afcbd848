"""Engine lifecycle and session-scoped units of work for the mapping cache."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from upilink.adapters.sqlalchemy.migrations import upgrade_head
from upilink.adapters.sqlalchemy.repositories import (
    SqlAlchemyEscrowWalletRepository,
    SqlAlchemyMappingRepository,
)
from upilink.config.storage import get_database_config
from upilink.domain.ports.unit_of_work import CacheRepositories, RepositoryCollection

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the cache database is used before ``startup`` or started twice."""


@dataclass(slots=True)
class _Binding:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None

    def bind(self, engine: Engine) -> None:
        self.engine = engine
        self.sessions = sessionmaker(bind=engine, expire_on_commit=False)

    def release(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.sessions = None

    def session_factory(self) -> sessionmaker[Session]:
        if self.sessions is None:
            raise StartupError(
                "Cache database not started; call "
                "upilink.adapters.sqlalchemy.unit_of_work.startup() first."
            )
        return self.sessions


_BINDING = _Binding()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Open the cache database and migrate it to the latest schema.

    An explicit ``engine`` wins over ``database_uri``, which wins over the
    configured ``DATABASE_URI``. Starting twice needs ``force=True``; the
    previous engine is left to its owner.
    """

    if _BINDING.engine is not None and not force:
        raise StartupError("Cache database already started; pass force=True to rebind.")

    target = engine
    if target is None:
        target = create_engine(database_uri or get_database_config().uri, future=True)
    upgrade_head(engine=target)
    _BINDING.bind(target)
    log.debug("Cache database ready at %s", target.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return _BINDING.engine


def is_started() -> bool:
    return _BINDING.engine is not None


def shutdown() -> None:
    """Dispose the engine and forget it; ``startup`` may be called again afterwards."""

    _BINDING.release()


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """One session per ``with`` block; leaving without ``commit`` discards the changes."""

    def __init__(self) -> None:
        self._sessions = _BINDING.session_factory()
        self._session: Session | None = None
        self._repositories: TRepositories | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        if self._session is not None:
            raise StartupError("Unit of work is already active")
        self._session = self._sessions()
        self._repositories = self._build_repositories(self._session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not active")
        return self._session

    @property
    def repositories(self) -> TRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not active")
        return self._repositories

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SqlAlchemyCacheUnitOfWork(BaseSqlAlchemyUnitOfWork[CacheRepositories]):
    def _build_repositories(self, session: Session) -> CacheRepositories:
        return CacheRepositories(
            mappings=SqlAlchemyMappingRepository(session),
            wallets=SqlAlchemyEscrowWalletRepository(session),
        )


if TYPE_CHECKING:
    from upilink.domain.ports.unit_of_work import CacheUnitOfWork

    _uow_check: CacheUnitOfWork = SqlAlchemyCacheUnitOfWork()
