"""Data model shared by the promotion managers and agents."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional


SECRETS_FILE = 'wp-config.php'
ARCHIVE_PREFIX = 'prod_backup_'
ARCHIVE_SUFFIX = '.tar.gz'
TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'


@dataclass(frozen=True)
class DeploymentConfig:
    """Immutable settings for one promotion run.

    Built once by ConfigLoader and passed to every manager. URLs are bare
    hosts (optionally with a path), never scheme-qualified.
    """

    stage_path: str
    stage_url: str
    prod_path: str
    prod_url: str
    backup_dir: str
    max_backups: int = 5
    preserved_tables: FrozenSet[str] = frozenset()
    prod_timezone: Optional[str] = None
    prod_admin_email: Optional[str] = None
    verbose: bool = True
    wp_cli: str = 'wp'
    allow_root: bool = True
    permission_workers: int = 4
    retry_attempts: int = 3
    retry_delay: float = 2.0

    @property
    def log_path(self) -> str:
        return f"{self.backup_dir.rstrip('/')}/deployment.log"


@dataclass(frozen=True)
class BackupArchive:
    """A compressed snapshot of production files, database and metadata.

    contained_files and contained_database_dump are None until the archive
    has been opened (by create() or inspect()); listing only reads names.
    """

    id: str
    file_path: str
    contained_files: Optional[bool] = None
    contained_database_dump: Optional[bool] = None
    metadata: Dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def created_at(self) -> Optional[datetime]:
        """Creation time parsed from the archive id, if it is a timestamp."""
        for fmt in (TIMESTAMP_FORMAT, '%Y%m%d_%H%M%S'):
            try:
                return datetime.strptime(self.id, fmt)
            except ValueError:
                continue
        return None


@dataclass(frozen=True)
class PreservedTableSnapshot:
    """A single-table dump taken right before the production schema is replaced."""

    table_name: str
    dump_file_path: str
    captured_at: str


@dataclass(frozen=True)
class RewriteTarget:
    """A (table, column) pair known to carry environment-specific URLs."""

    table: str
    column: str

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


# Table suffixes are joined to the site's $table_prefix
REWRITE_TARGET_COLUMNS = [
    ('options', 'option_value'),
    ('posts', 'post_content'),
    ('posts', 'post_excerpt'),
    ('postmeta', 'meta_value'),
    ('termmeta', 'meta_value'),
    ('comments', 'comment_content'),
    ('comments', 'comment_author_url'),
    ('commentmeta', 'meta_value'),
    ('usermeta', 'meta_value'),
]


def rewrite_targets(table_prefix: str = 'wp_') -> List[RewriteTarget]:
    """
    Build the list of rewrite targets for a table prefix.

    Args:
        table_prefix: WordPress $table_prefix of the site

    Returns:
        RewriteTarget list in a fixed order
    """
    return [RewriteTarget(f"{table_prefix}{suffix}", column) for suffix, column in REWRITE_TARGET_COLUMNS]


@dataclass
class ValidationReport:
    """Residual staging URL counts after a rewrite."""

    per_target: Dict[RewriteTarget, int] = field(default_factory=dict)
    prod_url_present: bool = False
    prod_url_count: int = 0
    scheme_variants: Dict[str, int] = field(default_factory=dict)
    serialized_corruption: Dict[RewriteTarget, int] = field(default_factory=dict)
    unchecked: List[RewriteTarget] = field(default_factory=list)

    @property
    def total_residual(self) -> int:
        return sum(self.per_target.values())

    @property
    def passed(self) -> bool:
        return self.total_residual == 0 and self.prod_url_present

    @property
    def corrupted_total(self) -> int:
        return sum(self.serialized_corruption.values())

    def format_report(self) -> str:
        """Format the report as human-readable lines."""
        lines = []
        for target, count in self.per_target.items():
            if target in self.unchecked:
                lines.append(f"  {target}: unchecked (query failed)")
            elif count:
                lines.append(f"  {target}: {count} residual reference(s)")
            else:
                lines.append(f"  {target}: clean")
        for variant, count in self.scheme_variants.items():
            if count:
                lines.append(f"  {variant} variant: {count} residual reference(s)")
        for target, count in self.serialized_corruption.items():
            if count:
                lines.append(f"  {target}: {count} serialized value(s) with broken lengths")
        lines.append(f"  Production URL present: {'yes' if self.prod_url_present else 'NO'}")
        lines.append(f"  Total residual references: {self.total_residual}")
        if self.unchecked:
            lines.append(f"  Unchecked targets: {len(self.unchecked)}")
        return '\n'.join(lines)
