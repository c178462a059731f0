"""
Command-line interface for SiteAudit
"""
import json
from datetime import datetime, timezone
from typing import Optional

import click
from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.exceptions import SiteAuditError, ValidationError
from core.logging import get_logger

logger = get_logger(__name__)


def _load_audit(path: str):
    """Read an audit JSON export: {"id", "url", "createdAt", "results"}"""
    from d4_audit_quality.repository import AuditRecord

    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    results = data.get("results", data) if isinstance(data, dict) else None
    if not isinstance(results, dict):
        raise ValidationError("Audit results must be a JSON object", field="results")

    # createdAt goes through pydantic so "Z" suffixes parse on every Python version
    return AuditRecord.from_results(
        audit_id=data.get("id", path),
        url=data.get("url", ""),
        created_at=data.get("createdAt") or datetime.now(timezone.utc),
        results=results,
    )


def _read_audit_or_exit(path: str):
    try:
        return _load_audit(path)
    except SiteAuditError as e:
        click.echo(f"✗ Invalid audit {path}: {e.message}", err=True)
    except (ValueError, PydanticValidationError) as e:
        click.echo(f"✗ Invalid audit {path}: {e}", err=True)
    raise SystemExit(1)


def _load_tiers(path: Optional[str]):
    from d3_scoring.tiers import load_tier_table

    return load_tier_table(path)


@click.group()
@click.version_option(version=settings.app_version)
def cli():
    """SiteAudit CLI - OFI classification and weighted site scoring"""
    pass


@cli.command()
@click.argument("path", required=False, type=click.Path(dir_okay=False))
def validate_rules(path: Optional[str]):
    """Validate a classification rules YAML file"""
    from d2_classification.rules_schema import resolve_rules_path, validate_rules as load_rules

    target = path or str(resolve_rules_path())
    try:
        schema = load_rules(target)
    except SiteAuditError as e:
        click.echo(f"✗ {e.message}", err=True)
        for error in e.details.get("errors", []):
            click.echo(f"  - {error}", err=True)
        raise SystemExit(1)

    click.echo(f"✓ Validation successful for {target}")
    click.echo(f"  Version: {schema.version}")
    click.echo(f"  Min criteria: {schema.min_criteria}")
    for criterion in schema.criteria:
        marker = " (critical)" if criterion.critical else ""
        click.echo(f"  - {criterion.name}{marker}: {len(criterion.categories)} categories")
    if schema.suppressors:
        click.echo(f"  Suppressors: {', '.join(s.name for s in schema.suppressors)}")


@cli.command()
@click.argument("path", required=False, type=click.Path(dir_okay=False))
def show_tiers(path: Optional[str]):
    """Show the page tier table"""
    try:
        table = _load_tiers(path)
    except SiteAuditError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise SystemExit(1)

    click.echo(f"Page tiers (v{table.version})")
    for tier, weight in sorted(table.weights.items()):
        click.echo(f"  Tier {int(tier)} (weight {weight:g}): {table.describe(tier)}")
        page_types = table.page_types_for(tier)
        click.echo(f"    Page types: {', '.join(page_types) if page_types else '(everything else)'}")
    if table.overrides:
        click.echo("  Overrides:")
        for url, tier in sorted(table.overrides.items()):
            click.echo(f"    {url} -> tier {int(tier)}")


@cli.command()
@click.argument("audit_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tiers", "tiers_path", type=click.Path(dir_okay=False), help="Page tier YAML")
def score_audit(audit_file: str, tiers_path: Optional[str]):
    """Compute the site summary of an exported audit"""
    from d3_scoring.aggregation import build_site_summary

    audit = _read_audit_or_exit(audit_file)
    try:
        summary = build_site_summary(audit.all_findings(), _load_tiers(tiers_path))
    except SiteAuditError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(summary.to_summary_dict(), indent=2))


@cli.command()
@click.argument("audit_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--rules", "rules_path", type=click.Path(dir_okay=False), help="Classification rules YAML")
@click.option("--tiers", "tiers_path", type=click.Path(dir_okay=False), help="Page tier YAML")
@click.option("--output", type=click.Path(dir_okay=False), help="Write the reclassified audit here")
def reclassify_audit(audit_file: str, rules_path: Optional[str], tiers_path: Optional[str], output: Optional[str]):
    """Reclassify the OFI findings of an exported audit"""
    from d2_classification.classifier import OFIClassifier
    from d4_audit_quality.reclassifier import AuditReclassifier

    audit = _read_audit_or_exit(audit_file)
    try:
        reclassifier = AuditReclassifier(
            classifier=OFIClassifier(rules_path=rules_path), tier_table=_load_tiers(tiers_path)
        )
    except SiteAuditError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise SystemExit(1)
    report = reclassifier.reclassify_audit(audit)
    click.echo(json.dumps(report.to_dict(), indent=2))

    if output:
        updated = reclassifier.apply(audit, report)
        with open(output, "w", encoding="utf-8") as fh:
            json.dump(
                {
                    "id": updated.id,
                    "url": updated.url,
                    "createdAt": updated.created_at.isoformat(),
                    "results": updated.to_results(),
                },
                fh,
                indent=2,
            )
        click.echo(f"Reclassified audit written to {output}", err=True)


@cli.command()
def env_info():
    """Display environment information"""
    click.echo(f"{settings.app_name} v{settings.app_version}")
    click.echo(f"Environment: {settings.environment}")
    click.echo(f"Classification rules: {settings.classification_rules_path}")
    click.echo(f"Page tiers: {settings.page_tiers_path}")
    click.echo(f"Reclassify workers: {settings.reclassify_max_workers}")


def main():
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
