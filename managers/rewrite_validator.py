"""Count residual staging URLs after a rewrite and flag broken serialized values."""
import logging

from core.exceptions import DatabaseError
from core.models import DeploymentConfig, ValidationReport, rewrite_targets
from utils.php_serialize import is_corrupted


class RewriteValidator:
    """Read-only checks on the production database."""

    def __init__(self, config: DeploymentConfig, database, logger=None):
        self.config = config
        self.database = database

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(self.__class__.__name__)

    def validate(self) -> ValidationReport:
        """
        Build a ValidationReport.

        A count query that fails is logged, counted as zero and listed as
        unchecked; the positive production URL check still has to pass.
        That check anchors the host after "//" so a staging host that
        embeds the production host does not count.
        """
        stage = self.config.stage_url
        prod = self.config.prod_url
        targets = rewrite_targets(self.database.table_prefix)
        options = targets[0]
        report = ValidationReport()

        for target in targets:
            try:
                report.per_target[target] = self.database.count_matches(target.table, target.column, stage)
            except DatabaseError as e:
                self.logger.warning(f"Could not check {target}: {e}")
                report.per_target[target] = 0
                report.unchecked.append(target)

        for variant in (f'https://{stage}', f'http://{stage}'):
            try:
                report.scheme_variants[variant] = self.database.count_matches(
                    options.table, options.column, variant
                )
            except DatabaseError as e:
                self.logger.warning(f"Could not check {variant} in {options}: {e}")

        try:
            report.prod_url_count = self.database.count_matches(options.table, options.column, f'//{prod}')
        except DatabaseError as e:
            self.logger.warning(f"Could not check production URL in {options}: {e}")
        report.prod_url_present = report.prod_url_count > 0

        for target in targets:
            try:
                values = self.database.fetch_values_containing(target.table, target.column, prod)
            except DatabaseError as e:
                self.logger.warning(f"Could not scan {target} for serialized values: {e}")
                continue
            broken = sum(1 for value in values if is_corrupted(value))
            if broken:
                report.serialized_corruption[target] = broken

        return report

    def log_report(self, report: ValidationReport) -> None:
        """Log the report; findings are warnings, a clean report is info."""
        if report.passed:
            self.logger.info("✓ URL validation passed - no staging URLs remain")
        else:
            self.logger.warning("URL validation found issues:")
        for line in report.format_report().splitlines():
            if report.passed:
                self.logger.info(line)
            else:
                self.logger.warning(line)
        if report.corrupted_total:
            self.logger.warning(
                f"WARNING: {report.corrupted_total} serialized value(s) have string lengths that no longer "
                f"match their contents; PHP will not be able to read them"
            )
