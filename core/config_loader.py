"""Configuration loader utilities."""
import json
import re
import shlex
from pathlib import Path
from typing import Dict, Any

from core.exceptions import ConfigurationError
from core.models import DeploymentConfig


REQUIRED_FIELDS = ['stage_path', 'stage_url', 'prod_path', 'prod_url', 'backup_dir']

# Variable names used by the legacy deploy_config.sh files
SHELL_KEYS = {
    'STAGE_PATH': 'stage_path',
    'STAGE_URL': 'stage_url',
    'PROD_PATH': 'prod_path',
    'PROD_URL': 'prod_url',
    'BACKUP_DIR': 'backup_dir',
    'MAX_BACKUPS': 'max_backups',
    'PRESERVE_TABLES': 'preserved_tables',
    'PRESERVE_TABLE': 'preserved_tables',
    'PROD_TIMEZONE': 'prod_timezone',
    'PROD_ADMIN_EMAIL': 'prod_admin_email',
}

SHELL_OPTION_KEYS = {
    'VERBOSE': 'verbose',
    'WP_CLI': 'wp_cli',
    'ALLOW_ROOT': 'allow_root',
    'PERMISSION_WORKERS': 'permission_workers',
}

_SHELL_ASSIGNMENT = re.compile(r'^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$')


def normalize_url(url: str) -> str:
    """
    Reduce a site URL to its bare host form.

    Args:
        url: URL such as "https://stage.example.com/"

    Returns:
        "stage.example.com"
    """
    bare = re.sub(r'^[a-zA-Z][a-zA-Z0-9+.-]*://', '', url.strip())
    return bare.rstrip('/')


def parse_table_list(value: Any) -> frozenset:
    """Parse a list or a space/comma delimited string of table names."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        names = value.replace(',', ' ').split()
    elif isinstance(value, (list, tuple, set, frozenset)):
        names = [str(v).strip() for v in value]
    else:
        raise ConfigurationError("preserved_tables must be a list or a space-delimited string")
    return frozenset(name for name in names if name)


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('1', 'true', 'yes', 'on'):
        return True
    if isinstance(value, str) and value.lower() in ('0', 'false', 'no', 'off', ''):
        return False
    raise ConfigurationError(f"{name} must be a boolean")


def _parse_positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer")
    if number <= 0:
        raise ConfigurationError(f"{name} must be greater than 0")
    return number


class ConfigLoader:
    """Utility class for loading and validating promotion configurations."""

    @staticmethod
    def load(config_path: str) -> Dict[str, Any]:
        """
        Load raw configuration from a JSON file or a shell-style KEY="value" file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary containing the configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the file cannot be parsed
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if path.suffix == '.json':
            try:
                with open(path, 'r') as f:
                    return json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in configuration: {e}")

        return ConfigLoader._load_shell(path)

    @staticmethod
    def _load_shell(path: Path) -> Dict[str, Any]:
        """Read KEY="value" assignments from a deploy_config.sh style file."""
        config: Dict[str, Any] = {}
        options: Dict[str, Any] = {}

        with open(path, 'r') as f:
            for line_number, line in enumerate(f, 1):
                stripped = line.strip()
                if not stripped or stripped.startswith('#'):
                    continue

                match = _SHELL_ASSIGNMENT.match(stripped)
                if not match:
                    continue

                key, raw_value = match.groups()
                try:
                    parts = shlex.split(raw_value, comments=True)
                except ValueError as e:
                    raise ConfigurationError(f"{path.name}:{line_number}: cannot parse value for {key}: {e}")
                value = ' '.join(parts)

                if key in SHELL_KEYS:
                    config[SHELL_KEYS[key]] = value
                elif key in SHELL_OPTION_KEYS:
                    options[SHELL_OPTION_KEYS[key]] = value

        if options:
            config['options'] = options
        return config

    @staticmethod
    def build(raw: Dict[str, Any]) -> DeploymentConfig:
        """
        Validate raw settings and build the immutable DeploymentConfig.

        Args:
            raw: Dictionary as returned by load()

        Returns:
            DeploymentConfig

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(raw, dict):
            raise ConfigurationError("Configuration must be a JSON object")

        for field in REQUIRED_FIELDS:
            value = raw.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"Missing required field in config: {field}")

        stage_url = normalize_url(raw['stage_url'])
        prod_url = normalize_url(raw['prod_url'])
        if not stage_url or not prod_url:
            raise ConfigurationError("stage_url and prod_url must not be empty")
        if stage_url == prod_url:
            raise ConfigurationError("stage_url and prod_url must be different")
        # The bare host pass would rewrite the production URL it just wrote
        if stage_url in prod_url:
            raise ConfigurationError(
                f"prod_url ({prod_url}) must not contain stage_url ({stage_url}); "
                f"the URL rewrite would apply twice"
            )

        stage_path = raw['stage_path'].rstrip('/') or '/'
        prod_path = raw['prod_path'].rstrip('/') or '/'
        if Path(stage_path).resolve() == Path(prod_path).resolve():
            raise ConfigurationError("stage_path and prod_path must be different directories")

        options = raw.get('options', {})
        if not isinstance(options, dict):
            raise ConfigurationError("options must be a dictionary")

        settings: Dict[str, Any] = {
            'stage_path': stage_path,
            'stage_url': stage_url,
            'prod_path': prod_path,
            'prod_url': prod_url,
            'backup_dir': raw['backup_dir'].rstrip('/') or '/',
            'max_backups': _parse_positive_int(raw.get('max_backups', 5), 'max_backups'),
            'preserved_tables': parse_table_list(raw.get('preserved_tables')),
            'prod_timezone': raw.get('prod_timezone') or None,
            'prod_admin_email': raw.get('prod_admin_email') or None,
        }

        if 'verbose' in options:
            settings['verbose'] = _parse_bool(options['verbose'], 'options.verbose')
        if 'allow_root' in options:
            settings['allow_root'] = _parse_bool(options['allow_root'], 'options.allow_root')
        if 'wp_cli' in options:
            if not isinstance(options['wp_cli'], str) or not options['wp_cli'].strip():
                raise ConfigurationError("options.wp_cli must be a non-empty string")
            settings['wp_cli'] = options['wp_cli'].strip()
        if 'permission_workers' in options:
            settings['permission_workers'] = _parse_positive_int(
                options['permission_workers'], 'options.permission_workers'
            )
        if 'retry_attempts' in options:
            settings['retry_attempts'] = _parse_positive_int(options['retry_attempts'], 'options.retry_attempts')
        if 'retry_delay' in options:
            try:
                delay = float(options['retry_delay'])
            except (TypeError, ValueError):
                raise ConfigurationError("options.retry_delay must be a number")
            if delay < 0:
                raise ConfigurationError("options.retry_delay must not be negative")
            settings['retry_delay'] = delay

        return DeploymentConfig(**settings)

    @staticmethod
    def load_deployment_config(config_path: str) -> DeploymentConfig:
        """Load and validate a configuration file in one step."""
        return ConfigLoader.build(ConfigLoader.load(config_path))
