"""
model_registry.py
~~~~~~~~~~~~~~~~~

SQLite-backed registry of trained networks.

Each row keeps the network in the ``.chisei`` binary format (with the
activation trailer) next to queryable metadata, so a stored model can be
exported to a file byte-for-byte or listed without decoding it.
"""

import os
import json
import sqlite3
import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from chisei import codec, config
from chisei.exceptions import ChiseiError
from chisei.network import NeuralNetwork

# Configure module logger
logger = logging.getLogger(__name__)

DB_FILENAME = 'networks.db'


class ModelDatabase:
    """
    Stores networks and their metadata in one SQLite file.

    Columns: network_id, architecture (JSON list), activation, model_data
    (encoded ``.chisei`` bytes), trained, accuracy, created_at, updated_at.
    """

    def __init__(self, db_path: str = os.path.join('models', DB_FILENAME)):
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success, rolls back and re-raises on any error.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    activation TEXT NOT NULL,
                    model_data BLOB NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        return {
            'network_id': row['network_id'],
            'architecture': architecture,
            'activation': row['activation'],
            'weights_shape': [
                [architecture[i], architecture[i + 1]]
                for i in range(len(architecture) - 1)
            ],
            'biases_shape': [
                [size] for size in architecture[1:]
            ],
            'trained': bool(row['trained']),
            'accuracy': row['accuracy'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network: NeuralNetwork,
        network_id: str,
        trained: bool = True,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Insert or replace a network.

        An existing row keeps its ``created_at`` timestamp.

        Raises:
            ValueError: If accuracy is outside [0.0, 1.0]
        """
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(
                f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
            )

        model_data = codec.encode(network, include_activation=True)

        with self._get_connection() as conn:
            conn.execute('''
                INSERT INTO networks
                (network_id, architecture, activation, model_data,
                 trained, accuracy)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    activation = excluded.activation,
                    model_data = excluded.model_data,
                    trained = excluded.trained,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                json.dumps(list(network.layer_sizes)),
                network.activation.value,
                sqlite3.Binary(model_data),
                1 if trained else 0,
                accuracy
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{list(network.layer_sizes)}, trained={trained}, accuracy={accuracy}"
        )
        return True

    def load_model_bytes_from_db(self, network_id: str) -> Optional[bytes]:
        """Return the stored ``.chisei`` bytes, or None if not found."""
        with self._get_connection() as conn:
            row = conn.execute(
                'SELECT model_data FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None
        return bytes(row['model_data'])

    def load_network_from_db(self, network_id: str) -> Optional[NeuralNetwork]:
        """
        Decode a stored network.

        Raises:
            ModelFormatError: If the stored bytes are corrupt
        """
        model_data = self.load_model_bytes_from_db(network_id)
        if model_data is None:
            return None

        network = codec.decode(model_data)
        logger.info(f"Loaded network '{network_id}'")
        return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            rows = conn.execute('''
                SELECT network_id, architecture, activation, trained,
                       accuracy, created_at, updated_at
                FROM networks
                ORDER BY created_at DESC
            ''').fetchall()

        networks = [self._row_to_metadata(row) for row in rows]
        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(
                f"Could not delete network '{network_id}': not found"
            )
        return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute('''
                SELECT network_id, architecture, activation, trained,
                       accuracy, created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,)).fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return self._row_to_metadata(row)

    def delete_old_networks_from_db(self, days: float) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of rows deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM networks "
                "WHERE julianday('now') - julianday(created_at) > ?",
                (days,)
            )
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted


# One database instance per directory
_databases: Dict[str, ModelDatabase] = {}


def _get_db(model_dir: Optional[str] = None) -> ModelDatabase:
    """
    Get or create the database for a model directory.

    Args:
        model_dir: Directory for the database file; defaults to
            CHISEI_MODEL_DIR
    """
    if model_dir is None:
        model_dir = config.get_model_dir()
    db = _databases.get(model_dir)
    if db is None:
        db = ModelDatabase(db_path=os.path.join(model_dir, DB_FILENAME))
        _databases[model_dir] = db
    return db


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network: NeuralNetwork,
    network_id: str,
    model_dir: Optional[str] = None,
    trained: bool = True,
    accuracy: Optional[float] = None
) -> bool:
    """
    Save a network to the registry.

    Args:
        network: The network to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        trained: Whether the network has been trained
        accuracy: Accuracy of the trained network (0.0 to 1.0)

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = NeuralNetwork([784, 30, 10])
        >>> save_network(net, "my_network", trained=False)
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).save_network_to_db(
            network, network_id, trained, accuracy
        )
    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[NeuralNetwork]:
    """
    Load a network from the registry.

    Returns:
        The decoded network, or None if it is missing or unreadable

    Example:
        >>> net = load_network("my_network")
        >>> if net:
        ...     print(f"Loaded network with {len(net.layer_sizes)} layers")
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)
    except ChiseiError as e:
        logger.error(f"Corrupt model data for network '{network_id}': {e}")
        return None
    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None


def load_model_bytes(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[bytes]:
    """Return the stored ``.chisei`` bytes of a network, or None."""
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_model_bytes_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error reading network '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata, newest first.

    Example:
        >>> for net in list_saved_networks():
        ...     print(f"{net['network_id']}: {net['architecture']}")
    """
    try:
        return _get_db(model_dir).list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: Optional[str] = None) -> bool:
    """Delete a saved network; True if a row was removed."""
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def get_network_metadata(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a network without decoding its parameters.

    Example:
        >>> metadata = get_network_metadata("my_network")
        >>> if metadata:
        ...     print(f"Accuracy: {metadata['accuracy']}")
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None


def delete_old_networks(days: float = 2, model_dir: Optional[str] = None) -> int:
    """
    Delete networks older than ``days`` days.

    Returns:
        int: Number of deleted networks, -1 on database error

    Raises:
        ValueError: If days is negative
    """
    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
