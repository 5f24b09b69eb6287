#!/usr/bin/env python3
"""
Gestión de migraciones con Alembic.

Uso:
  python migrate.py create 'mensaje'   # Autogenerar revisión desde los modelos
  python migrate.py upgrade [rev]       # Aplicar hasta head (o rev)
  python migrate.py downgrade [rev]     # Volver una revisión (o hasta rev)
  python migrate.py history             # Ver historial
  python migrate.py current             # Ver revisión aplicada
  python migrate.py stamp [rev]         # Marcar la base como migrada sin ejecutar
"""
import sys
from pathlib import Path

from alembic.config import Config
from alembic import command

from app.core.config import settings

ROOT_DIR = Path(__file__).parent


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT_DIR / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    command.revision(get_alembic_config(), autogenerate=True, message=message)
    print(f"Revisión creada: {message}")


def upgrade(revision: str = "head"):
    command.upgrade(get_alembic_config(), revision)
    print(f"Base de datos migrada a {revision}")


def downgrade(revision: str = "-1"):
    command.downgrade(get_alembic_config(), revision)
    print(f"Base de datos revertida a {revision}")


def history():
    command.history(get_alembic_config())


def current():
    command.current(get_alembic_config())


def stamp(revision: str = "head"):
    command.stamp(get_alembic_config(), revision)
    print(f"Base de datos marcada en {revision}")


COMMANDS = {
    "upgrade": upgrade,
    "downgrade": downgrade,
    "history": history,
    "current": current,
    "stamp": stamp,
}


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    action, args = sys.argv[1], sys.argv[2:]

    if action == "create":
        if not args:
            print("Error: se requiere un mensaje para la revisión")
            sys.exit(1)
        create_migration(args[0])
    elif action in COMMANDS:
        COMMANDS[action](*args[:1])
    else:
        print(f"Acción desconocida: {action}")
        sys.exit(1)
