"""
Configuration partagée pour les tests.

Le mapping du journal des mouvements est démarré une seule fois pour
toute la session de tests. Les tests d'intégration et e2e partagent
les fabriques de session SQLite définies ici.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from inventory.adapters import orm


@pytest.fixture(scope="session", autouse=True)
def mappers():
    """Démarre le mapping ORM une fois pour toute la session."""
    orm.start_mappers()


@pytest.fixture
def sqlite_session_factory():
    """Fabrique de sessions sur une base SQLite en mémoire, tables créées."""
    engine = create_engine("sqlite:///:memory:")
    orm.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Fabrique de sessions sur un fichier SQLite.

    Contrairement à la base en mémoire, chaque session a sa propre
    connexion : on peut y simuler deux écrivains concurrents.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'inventory.db'}")
    orm.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()
