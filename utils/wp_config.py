"""Read database credentials and table prefix from a WordPress wp-config.php."""
import os
import re
from dataclasses import dataclass
from typing import Dict, Optional

from core.exceptions import ConfigurationError
from core.models import SECRETS_FILE


_DEFINE_PATTERN = re.compile(
    r"""define\s*\(\s*['"](DB_NAME|DB_USER|DB_PASSWORD|DB_HOST|DB_CHARSET)['"]\s*,\s*"""
    r"""(?:'((?:[^'\\]|\\.)*)'|"((?:[^"\\]|\\.)*)")\s*\)"""
)
_PREFIX_PATTERN = re.compile(r"""\$table_prefix\s*=\s*['"]([A-Za-z0-9_]*)['"]\s*;""")


@dataclass(frozen=True)
class WPDatabaseSettings:
    """Connection settings of one WordPress site."""

    name: str
    user: str
    password: str
    host: str = 'localhost'
    port: Optional[int] = None
    unix_socket: Optional[str] = None
    charset: str = 'utf8mb4'
    table_prefix: str = 'wp_'

    def connection_kwargs(self) -> Dict[str, object]:
        """Keyword arguments for mysql.connector.connect()."""
        kwargs: Dict[str, object] = {
            'host': self.host,
            'user': self.user,
            'password': self.password,
            'database': self.name,
            'charset': self.charset,
        }
        if self.port is not None:
            kwargs['port'] = self.port
        if self.unix_socket:
            kwargs['unix_socket'] = self.unix_socket
        return kwargs


def split_db_host(db_host: str):
    """
    Split a WordPress DB_HOST value into host, port and socket.

    Args:
        db_host: e.g. "localhost", "db:3307" or "localhost:/run/mysqld/mysqld.sock"

    Returns:
        Tuple of (host, port or None, socket or None)
    """
    host, sep, rest = db_host.partition(':')
    if not sep:
        return db_host or 'localhost', None, None
    if rest.startswith('/'):
        return host or 'localhost', None, rest
    if rest.isdigit():
        return host or 'localhost', int(rest), None
    return db_host, None, None


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def parse_wp_config(text: str) -> WPDatabaseSettings:
    """
    Parse wp-config.php source text.

    Raises:
        ConfigurationError: If DB_NAME or DB_USER is missing
    """
    values: Dict[str, str] = {}
    for match in _DEFINE_PATTERN.finditer(text):
        key = match.group(1)
        raw = match.group(2) if match.group(2) is not None else match.group(3)
        values[key] = _unescape(raw)

    for required in ('DB_NAME', 'DB_USER'):
        if required not in values:
            raise ConfigurationError(f"{required} not defined in {SECRETS_FILE}")

    host, port, unix_socket = split_db_host(values.get('DB_HOST', 'localhost'))
    prefix_match = _PREFIX_PATTERN.search(text)

    return WPDatabaseSettings(
        name=values['DB_NAME'],
        user=values['DB_USER'],
        password=values.get('DB_PASSWORD', ''),
        host=host,
        port=port,
        unix_socket=unix_socket,
        charset=values.get('DB_CHARSET') or 'utf8mb4',
        table_prefix=prefix_match.group(1) if prefix_match else 'wp_',
    )


def read_wp_config(site_path: str) -> WPDatabaseSettings:
    """Read the wp-config.php of the site rooted at site_path."""
    config_file = os.path.join(site_path, SECRETS_FILE)
    try:
        with open(config_file, 'r', encoding='utf-8', errors='replace') as f:
            return parse_wp_config(f.read())
    except OSError as e:
        raise ConfigurationError(f"Cannot read {config_file}: {e}")
