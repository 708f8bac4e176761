"""kubecomposer CLI - Command-line interface for composing K8s manifests.

This module provides the main CLI entrypoint for kubecomposer, allowing users
to render, validate and summarize project files and to check existing
manifests from the command line.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from kubecomposer.core.config import logging_level, output_directory
from kubecomposer.core.errors import ContractError, ProjectFormatError
from kubecomposer.k8s.aggregate import check_project
from kubecomposer.k8s.examples import sample_project
from kubecomposer.k8s.loader import parse_manifests
from kubecomposer.k8s.models import PROJECT_COLLECTIONS, Project, ProjectSettings
from kubecomposer.k8s.project_io import load_project
from kubecomposer.k8s.serializer import serializable_resources, serialize, serialize_all

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main CLI entrypoint for kubecomposer."""
    parser = argparse.ArgumentParser(
        prog="kubecomposer",
        description="kubecomposer - compose and validate Kubernetes manifests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print all manifests of a project
  kubecomposer render project.yaml

  # Write one file per resource
  kubecomposer render project.json --out manifests/

  # Validate a project (exit status 1 when invalid)
  kubecomposer validate project.yaml

  # Check manifests written by hand or by another tool
  kubecomposer check manifests/rbac.yaml

  # Render the built-in sample project
  kubecomposer demo

Note:
  The default output directory and log level can be set in kubecomposer.json
  as {"output": {"directory": "..."}, "logging": {"level": "INFO"}} or through
  the OUTPUT_DIRECTORY and LOGGING_LEVEL environment variables.
"""
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    render_parser = subparsers.add_parser("render", help="Render a project's manifests")
    render_parser.add_argument("project", help="Path to project file (.json, .yaml or .yml)")
    render_parser.add_argument(
        "--out",
        default=None,
        help="Directory to write one YAML file per resource (default: from kubecomposer.json, else stdout)"
    )

    validate_parser = subparsers.add_parser("validate", help="Validate every resource of a project")
    validate_parser.add_argument("project", help="Path to project file")

    summary_parser = subparsers.add_parser("summary", help="Show resource count and validity of a project")
    summary_parser.add_argument("project", help="Path to project file")

    check_parser = subparsers.add_parser("check", help="Parse and validate a manifest file")
    check_parser.add_argument("manifest", help="Path to a (multi-document) manifest YAML file")

    demo_parser = subparsers.add_parser("demo", help="Render the built-in sample project")
    demo_parser.add_argument("--out", help="Directory to write one YAML file per resource")

    for sub in (render_parser, validate_parser, summary_parser, check_parser, demo_parser):
        sub.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    # Setup logging
    if getattr(args, "verbose", False):
        level = logging.INFO
    else:
        level = logging_level()
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

    # Handle commands
    if args.command == "render":
        return cmd_render(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "summary":
        return cmd_summary(args)
    elif args.command == "check":
        return cmd_check(args)
    elif args.command == "demo":
        return cmd_demo(args)
    else:
        parser.print_help()
        return 1


def manifest_filename(instance) -> str:
    """File name for one rendered resource, e.g. ``rolebinding-data-read-pods.yaml``."""
    namespace = getattr(instance, "namespace", "")
    parts = [instance.kind.lower()]
    if namespace:
        parts.append(namespace)
    parts.append(instance.name or "unnamed")
    return "-".join(parts) + ".yaml"


def write_manifests(resources, output_dir: Path, settings: Optional[ProjectSettings] = None) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for instance in resources:
        path = output_dir / manifest_filename(instance)
        path.write_text(serialize(instance, settings), encoding="utf-8")
        print(f"Wrote {path}")


def _render_project(project: Project, out) -> int:
    resources = serializable_resources(project)
    if out:
        write_manifests(resources, Path(out), project.settings)
    else:
        sys.stdout.write(serialize_all(resources, project.settings))
    return 0


def _print_errors(label: str, errors) -> None:
    print(f"✗ {label}")
    for field_path, message in errors.items():
        print(f"    {field_path}: {message}")


def cmd_render(args):
    """Handle render command."""
    project_path = Path(args.project)
    if not project_path.exists():
        print(f"Error: Project file not found: {project_path}", file=sys.stderr)
        return 1

    out = args.out
    if out is None:
        out = output_directory()

    try:
        project = load_project(str(project_path))
        return _render_project(project, out)
    except (ProjectFormatError, ContractError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.exception("Render failed")
        return 1


def cmd_validate(args):
    """Handle validate command."""
    project_path = Path(args.project)
    if not project_path.exists():
        print(f"Error: Project file not found: {project_path}", file=sys.stderr)
        return 1

    try:
        project = load_project(str(project_path))
        report = check_project(project)
    except (ProjectFormatError, ContractError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.exception("Validation failed")
        return 1

    settings_errors = report.errors["settings"][0]
    if settings_errors:
        _print_errors("settings", settings_errors)
    for collection, _ in PROJECT_COLLECTIONS:
        for index, errors in enumerate(report.errors[collection]):
            if errors:
                _print_errors(f"{collection}[{index}]", errors)

    if report.valid:
        print("✓ Project is valid")
        return 0
    print(f"\n{len(report.violations)} error(s) found")
    return 1


def cmd_summary(args):
    """Handle summary command."""
    project_path = Path(args.project)
    if not project_path.exists():
        print(f"Error: Project file not found: {project_path}", file=sys.stderr)
        return 1

    try:
        project = load_project(str(project_path))
        report = check_project(project)
    except (ProjectFormatError, ContractError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.exception("Summary failed")
        return 1

    for collection, _ in PROJECT_COLLECTIONS:
        size = len(getattr(project, collection))
        if size:
            print(f"{collection}: {size}")
    print(f"Resources: {report.resource_count}")
    print(f"Status: {'valid' if report.valid else 'invalid'} ({len(report.violations)} error(s))")
    return 0


def cmd_check(args):
    """Handle check command."""
    manifest_path = Path(args.manifest)
    if not manifest_path.exists():
        print(f"Error: Manifest file not found: {manifest_path}", file=sys.stderr)
        return 1

    try:
        resources = parse_manifests(manifest_path.read_text(encoding="utf-8"))
        # Documents of the same file resolve references against each other
        by_type = {record_type: [] for _, record_type in PROJECT_COLLECTIONS}
        for instance in resources:
            by_type[type(instance)].append(instance)
        project = Project(**{
            collection: tuple(by_type[record_type]) for collection, record_type in PROJECT_COLLECTIONS
        })
        report = check_project(project)
    except (ProjectFormatError, ContractError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.exception("Check failed")
        return 1

    failed = 0
    for collection, _ in PROJECT_COLLECTIONS:
        for instance, errors in zip(getattr(project, collection), report.errors[collection]):
            label = f"{instance.kind} {instance.name or '(unnamed)'}"
            if errors:
                failed += 1
                _print_errors(label, errors)
            else:
                print(f"✓ {label}")

    print(f"\nChecked {len(resources)} resource(s), {failed} invalid")
    return 1 if failed else 0


def cmd_demo(args):
    """Handle demo command."""
    try:
        return _render_project(sample_project(), args.out)
    except ContractError as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.exception("Demo failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
