"""
Pattern Unit of Work.

Le Unit of Work (UoW) gère la notion de transaction atomique.
Il coordonne l'écriture en base de données, l'écriture du journal
des mouvements et la collecte des événements émis par les opérations
sur les agrégats.

Le UoW agit comme un context manager :
    with uow:
        stock = uow.stocks.find_by_id(stock_id)
        uow.record(stock.reserve(quantité, id_commande))
        uow.stocks.save(stock)
        uow.commit()

Les événements enregistrés sont un tampon à vidage unique : ceux
d'une transaction annulée sont perdus, ceux d'une transaction validée
sont remis une seule fois au message bus.
"""

from __future__ import annotations

import abc
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from inventory import config
from inventory.adapters import repository
from inventory.domain import events
from inventory.service_layer import movements


def make_engine(database_uri: str):
    """
    Crée le moteur de la base.

    Le contrôle de concurrence repose sur le nombre de lignes de
    l'UPDATE versionné : hors SQLite, la base tourne en READ COMMITTED
    pour que le perdant d'une course voie 0 ligne plutôt qu'une erreur
    de sérialisation.
    """
    if database_uri.startswith("sqlite"):
        return create_engine(database_uri)
    return create_engine(database_uri, isolation_level="READ COMMITTED")


DEFAULT_SESSION_FACTORY = sessionmaker(bind=make_engine(config.get_settings().database_uri))


class AbstractUnitOfWork(abc.ABC):
    """
    Interface abstraite du Unit of Work.

    Fournit les repositories `stocks` et `movements` et gère
    commit/rollback. Le rollback est automatique si commit() n'est
    pas appelé (grâce au __exit__ du context manager).
    """

    stocks: repository.AbstractStockRepository
    movements: repository.AbstractMovementLedger

    def __init__(self) -> None:
        self._pending: list[events.Event] = []
        self._committed: list[events.Event] = []

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args: object) -> None:
        self.rollback()

    def record(self, event: events.Event) -> None:
        """Ajoute un événement au tampon de la transaction en cours."""
        self._pending.append(event)

    def commit(self) -> None:
        """
        Valide la transaction.

        Les mouvements sont écrits dans la même transaction que les
        modifications qui les ont causés : ils sont validés ou annulés
        ensemble.
        """
        movements.record_movements(self._pending, self)
        self._commit()
        self._committed.extend(self._pending)
        self._pending.clear()

    def rollback(self) -> None:
        self._pending.clear()
        self._rollback()

    def collect_new_events(self) -> Iterator[events.Event]:
        """Vide les événements des transactions validées (une seule fois)."""
        while self._committed:
            yield self._committed.pop(0)

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _rollback(self) -> None:
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    Implémentation concrète du UoW avec SQLAlchemy.

    Crée une session à l'entrée du context manager,
    la ferme à la sortie. Rollback automatique si pas de commit.
    """

    def __init__(self, session_factory: sessionmaker = DEFAULT_SESSION_FACTORY):
        super().__init__()
        self.session_factory = session_factory

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.session: Session = self.session_factory()
        self.stocks = repository.SqlAlchemyStockRepository(self.session)
        self.movements = repository.SqlAlchemyMovementLedger(self.session)
        return super().__enter__()

    def __exit__(self, *args: object) -> None:
        super().__exit__(*args)
        self.session.close()

    def _commit(self) -> None:
        self.session.commit()

    def _rollback(self) -> None:
        self.session.rollback()
