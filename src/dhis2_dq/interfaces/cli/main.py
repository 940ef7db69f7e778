import argparse
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional

import colorlog
import yaml
from tqdm import tqdm

from dhis2_dq import __version__ as _PACKAGE_VERSION
from dhis2_dq.comparison import load_element_groups, load_publish_mapping, write_element_groups
from dhis2_dq.comparison.automap import (
    DEFAULT_MIN_SIMILARITY,
    filter_by_confidence,
    generate_cross_dataset_mappings,
    groups_from_mappings,
    suggestions_to_mapping,
)
from dhis2_dq.core.enums import MappingConfidence, SampleSource
from dhis2_dq.core.errors import ConfigurationError, FetchError, RunCancelled, RunError
from dhis2_dq.orchestration import ComparisonSource, DQRunParams, run_comparison, run_dq
from dhis2_dq.sources import Dhis2Client, InstanceDefinition, InstanceRegistry
from dhis2_dq.validation import RuleCatalog, ValidationEngine, print_report
from dhis2_dq.validation.config import DEFAULT_FETCH_TIMEOUT, DEFAULT_FETCH_WORKERS

SAMPLE_SOURCE_CHOICES = [s.value for s in SampleSource]
CONFIDENCE_CHOICES = [c.value for c in MappingConfidence]


def setup_logging(
    verbose: bool = False, warnings_only: bool = False, errors_only: bool = False
) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    log_format = "%(asctime)s:%(levelname)s:%(name)s:%(lineno)d: %(message)s"
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    stream_handler = colorlog.StreamHandler()
    formatter = colorlog.ColoredFormatter(f"%(log_color)s{log_format}", log_colors=log_colors)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if errors_only:
        logger.setLevel(logging.ERROR)
    elif warnings_only:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _progress_bar(desc: str) -> "tuple[tqdm, Callable[[str, float], None]]":
    pbar = tqdm(
        total=100,
        desc=f"{desc:<31}",
        unit="%",
        bar_format="{desc}{percentage:3.0f}%|{bar}| [{elapsed}] {postfix}",
    )

    def on_progress(step: str, percent: float) -> None:
        pbar.n = percent
        pbar.set_postfix_str(step, refresh=True)

    return pbar, on_progress


def _report_path(arg, default_dir: Path, filename: str) -> Path:
    report_dir = default_dir if arg is True else Path(arg)
    report_dir.mkdir(parents=True, exist_ok=True)
    return report_dir / filename


def _load_registry(args: argparse.Namespace) -> Optional[InstanceRegistry]:
    instances_file = Path(args.instances or Path("config/instances.yaml")).resolve()
    try:
        return InstanceRegistry(instances_file)
    except (FileNotFoundError, ConfigurationError) as e:
        logging.error("Cannot load instances: %s", e)
        return None


def _get_instance(registry: InstanceRegistry, name: str) -> Optional[InstanceDefinition]:
    try:
        return registry.get(name)
    except KeyError as e:
        known = ", ".join(i.name for i in registry.all()) or "none"
        logging.error("%s (known instances: %s)", e.args[0], known)
        return None


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare logical data elements across two or more datasets.

    Returns:
        0 if every aligned record is valid
        1 if the comparison could not run
        2 if mismatches, missing or out-of-range records were found
    """
    registry = _load_registry(args)
    if registry is None:
        return 1
    instance = _get_instance(registry, args.instance)
    if instance is None:
        return 1

    dataset_ids = _split_csv(args.datasets) or list(instance.datasets)
    if len(dataset_ids) < 2:
        logging.error("At least two datasets are required (--datasets or the instance's datasets)")
        return 1
    periods = _split_csv(args.periods)
    if not periods:
        logging.error("--periods is required")
        return 1

    groups_file = Path(args.groups or Path("config/element_groups.yaml")).resolve()
    try:
        groups = load_element_groups(groups_file)
    except (FileNotFoundError, ConfigurationError) as e:
        logging.error("Cannot load element groups: %s", e)
        return 1

    with Dhis2Client(instance, timeout=args.timeout) as client:
        sources = [ComparisonSource(client=client, dataset_id=ds) for ds in dataset_ids]
        pbar, on_progress = _progress_bar("Comparing datasets")
        try:
            report = run_comparison(
                sources,
                groups,
                org_unit=args.org_unit,
                period=periods,
                org_unit_name=args.org_unit_name or "",
                on_progress=on_progress,
                timeout=args.timeout,
            )
        except RunError as e:
            logging.error("%s", e)
            return 1
        finally:
            pbar.close()

    print(report.to_console_summary())

    stem = f"{args.org_unit}_{'-'.join(report.periods) or 'none'}_comparison"
    if args.report_json:
        report_path = _report_path(args.report_json, Path("reports"), f"{stem}.json")
        with open(report_path, "w", encoding="utf-8") as f:
            f.write(report.to_json())
        logging.info("JSON report saved: %s", report_path)
    if args.csv:
        csv_path = _report_path(args.csv, Path("reports"), f"{stem}.csv")
        report.to_dataframe().to_csv(csv_path, index=False)
        logging.info("CSV saved: %s", csv_path)

    if not report.periods:
        logging.error("No periods were compared.")
        return 1
    if report.summary.issue_count > 0:
        logging.warning("Comparison found %d records with issues.", report.summary.issue_count)
        return 2
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Fetch one dataset/period, run validation rules, optionally publish.

    Returns:
        0 if all validations passed without errors
        1 if the run failed (login, fetch, publish) or nothing was validated
        2 if any validation errors were found
    """
    registry = _load_registry(args)
    if registry is None:
        return 1
    source_instance = _get_instance(registry, args.instance)
    if source_instance is None:
        return 1
    destination_instance = None
    if args.destination:
        destination_instance = _get_instance(registry, args.destination)
        if destination_instance is None:
            return 1

    rules_file = Path(args.rules or Path("config/validation_rules.yaml")).resolve()
    try:
        catalog = RuleCatalog.from_yaml(rules_file)
    except (FileNotFoundError, ConfigurationError) as e:
        logging.error("Cannot load validation rules: %s", e)
        return 1
    rules = catalog.active_rules(args.dataset)
    logging.info(
        "Loaded %d active rules for dataset %s (%d configured)", len(rules), args.dataset, len(catalog)
    )

    data_elements = _split_csv(args.data_elements)
    if not data_elements:
        data_elements = sorted({de for rule in rules for de in rule.data_elements})

    element_mapping, org_unit_mapping = {}, {}
    if args.mapping:
        try:
            element_mapping, org_unit_mapping = load_publish_mapping(Path(args.mapping).resolve())
        except (FileNotFoundError, ConfigurationError) as e:
            logging.error("Cannot load publish mapping: %s", e)
            return 1
    elif destination_instance is not None:
        logging.error("--mapping is required when --destination is given")
        return 1

    params = DQRunParams(
        dataset_id=args.dataset,
        data_elements=data_elements,
        org_units=_split_csv(args.org_units),
        period=args.period,
        element_mapping=element_mapping,
        org_unit_mapping=org_unit_mapping,
        block_on_errors=not args.no_block,
        timeout=args.timeout,
        max_workers=args.workers,
    )
    engine = ValidationEngine(rules, sample_source=SampleSource(args.sample_source))

    cancel_event = threading.Event()
    source = Dhis2Client(source_instance, timeout=args.timeout)
    destination = (
        Dhis2Client(destination_instance, timeout=args.timeout) if destination_instance else None
    )
    pbar, on_progress = _progress_bar("Running data quality checks")
    try:
        result = run_dq(
            params,
            source,
            engine,
            destination=destination,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
    except KeyboardInterrupt:
        cancel_event.set()
        logging.error("Interrupted")
        return 1
    except RunCancelled as e:
        logging.error("%s", e)
        return 1
    except RunError as e:
        logging.error("%s", e)
        for key, name in e.names.items():
            logging.error("  %s: %s", key, name)
        return 1
    finally:
        pbar.close()
        source.close()
        if destination is not None:
            destination.close()

    report = result.validation
    if result.used_fallback:
        logging.warning("Values came from the analytics fallback")
    for ou, count in result.counts_by_org_unit.items():
        logging.info("Org unit %s: %d data values", result.names.org_unit(ou), count)
    for ou, reason in result.failed_org_units.items():
        logging.warning("Org unit %s was not fetched: %s", result.names.org_unit(ou), reason)
    print_report(report)

    stem = f"{args.dataset}_{args.period}_validation"
    if args.report:
        report_path = _report_path(args.report, Path("reports"), f"{stem}.md")
        with open(report_path, "w", encoding="utf-8") as f:
            f.write(report.to_markdown())
        logging.info("Markdown report saved: %s", report_path)
    if args.report_json:
        report_path = _report_path(args.report_json, Path("reports"), f"{stem}.json")
        with open(report_path, "w", encoding="utf-8") as f:
            f.write(report.to_json())
        logging.info("JSON report saved: %s", report_path)

    if result.publish is not None:
        logging.info(
            "Published %d values (%d unmapped skipped, %d conflicts)",
            result.publish.posted,
            result.publish.skipped_unmapped,
            len(result.publish.conflicts),
        )
    elif result.publish_blocked:
        logging.warning("Publishing was blocked by validation errors (use --no-block to override)")
    logging.info("Run finished in %.1fs", result.duration_seconds)

    if report.values_checked == 0:
        logging.error("No data values were validated.")
        return 1
    if report.has_errors(strict=args.strict):
        logging.error("Validation found %d errors.", report.get_error_count())
        return 2
    return 0


def cmd_suggest_groups(args: argparse.Namespace) -> int:
    """Suggest element groups by matching element names across datasets.

    The first dataset is the source; every source element that matches in at
    least one other dataset becomes a group. Review the output before using
    it with ``compare``.

    Returns:
        0 if groups were written
        1 if datasets could not be fetched or nothing matched
    """
    registry = _load_registry(args)
    if registry is None:
        return 1
    instance = _get_instance(registry, args.instance)
    if instance is None:
        return 1

    dataset_ids = _split_csv(args.datasets) or list(instance.datasets)
    if len(dataset_ids) < 2:
        logging.error("At least two datasets are required (--datasets or the instance's datasets)")
        return 1

    with Dhis2Client(instance, timeout=args.timeout) as client:
        try:
            datasets = [client.fetch_dataset_elements(ds) for ds in dataset_ids]
        except FetchError as e:
            logging.error("Cannot fetch dataset elements: %s", e)
            return 1

    source, targets = datasets[0], datasets[1:]
    if not source.elements:
        logging.error("Dataset %s has no data elements", source.dataset_id)
        return 1

    min_confidence = MappingConfidence(args.min_confidence)
    mappings = generate_cross_dataset_mappings(source, targets, args.min_similarity)
    for target in targets:
        accepted = filter_by_confidence(mappings[target.dataset_id], min_confidence)
        print(f"\n{source.dataset_name or source.dataset_id} -> {target.dataset_name or target.dataset_id}")
        for s in accepted:
            print(
                f"  [{s.confidence.value:<6}] {s.similarity.overall:4.0%}  "
                f"{s.source.display_name} -> {s.target.display_name}  ({'; '.join(s.reasons)})"
            )
        if not accepted:
            print("  no matches")

    groups = groups_from_mappings(source, targets, mappings, min_confidence)
    if not groups:
        logging.error("No element matched at confidence %s or above", min_confidence.value)
        return 1

    output = Path(args.output or Path("config/element_groups.suggested.yaml")).resolve()
    write_element_groups(groups, output)
    logging.info("Wrote %d suggested element groups: %s", len(groups), output)

    if args.publish_mapping:
        first_target = targets[0].dataset_id
        element_map = suggestions_to_mapping(
            filter_by_confidence(mappings[first_target], min_confidence)
        )
        mapping_path = Path(args.publish_mapping).resolve()
        mapping_path.parent.mkdir(parents=True, exist_ok=True)
        with open(mapping_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {"data_elements": element_map}, f, sort_keys=False, allow_unicode=True, indent=2
            )
        logging.info(
            "Wrote publish mapping %s -> %s (%d elements): %s",
            source.dataset_id,
            first_target,
            len(element_map),
            mapping_path,
        )
    return 0


def _add_common_source_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--instances",
        default=None,
        help="Instances YAML (defaults to ./config/instances.yaml)",
    )
    p.add_argument("--instance", required=True, help="Name of the source DHIS2 instance")
    p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_FETCH_TIMEOUT,
        help=f"Per-request timeout in seconds (default {DEFAULT_FETCH_TIMEOUT:g})",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dhis2-dq",
        description=f"DHIS2 Data Quality Tools (v{_PACKAGE_VERSION})",
    )
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    p.add_argument(
        "--warnings-only",
        action="store_true",
        help="Show only warnings and errors (overrides --verbose)",
    )
    p.add_argument(
        "--errors-only",
        action="store_true",
        help="Show only errors (overrides --warnings-only and --verbose)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    p_compare = sub.add_parser("compare", help="Compare logical data elements across datasets")
    _add_common_source_args(p_compare)
    p_compare.add_argument(
        "--datasets",
        default=None,
        help="Comma-separated dataset UIDs (defaults to the instance's datasets)",
    )
    p_compare.add_argument(
        "--groups",
        default=None,
        help="Element groups YAML (defaults to ./config/element_groups.yaml)",
    )
    p_compare.add_argument("--org-unit", required=True, help="Org unit UID")
    p_compare.add_argument("--org-unit-name", default=None, help="Org unit display name")
    p_compare.add_argument(
        "--periods",
        required=True,
        help="Comma-separated DHIS2 periods (e.g. 202401,202402)",
    )
    p_compare.add_argument(
        "--report-json",
        nargs="?",
        const=True,
        default=False,
        help="Write the JSON report. Optionally specify custom directory path (default ./reports).",
    )
    p_compare.add_argument(
        "--csv",
        nargs="?",
        const=True,
        default=False,
        help="Write aligned records as CSV. Optionally specify custom directory path (default ./reports).",
    )
    p_compare.set_defaults(func=cmd_compare)

    p_validate = sub.add_parser("validate", help="Validate a dataset and optionally publish it")
    _add_common_source_args(p_validate)
    p_validate.add_argument("--dataset", required=True, help="Source dataset UID")
    p_validate.add_argument("--org-units", required=True, help="Comma-separated org unit UIDs")
    p_validate.add_argument("--period", required=True, help="DHIS2 period (e.g. 202406)")
    p_validate.add_argument(
        "--data-elements",
        default=None,
        help="Comma-separated data element UIDs (defaults to those named by the rules)",
    )
    p_validate.add_argument(
        "--rules",
        default=None,
        help="Validation rules YAML (defaults to ./config/validation_rules.yaml)",
    )
    p_validate.add_argument(
        "--sample-source",
        choices=SAMPLE_SOURCE_CHOICES,
        default=SampleSource.AUTO.value,
        help="Sample used for outlier rules (default auto)",
    )
    p_validate.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_FETCH_WORKERS,
        help=f"Concurrent org unit fetches (default {DEFAULT_FETCH_WORKERS})",
    )
    p_validate.add_argument("--destination", default=None, help="Destination instance to publish to")
    p_validate.add_argument("--mapping", default=None, help="Publish mapping YAML (source -> destination ids)")
    p_validate.add_argument(
        "--no-block",
        action="store_true",
        help="Publish even when validation reports errors",
    )
    p_validate.add_argument("--strict", action="store_true", help="Treat warnings as errors")
    p_validate.add_argument(
        "--report",
        nargs="?",
        const=True,
        default=False,
        help="Generate detailed Markdown report. Optionally specify custom directory path (default ./reports).",
    )
    p_validate.add_argument(
        "--report-json",
        nargs="?",
        const=True,
        default=False,
        help="Generate detailed JSON report. Optionally specify custom directory path (default ./reports).",
    )
    p_validate.set_defaults(func=cmd_validate)

    p_suggest = sub.add_parser(
        "suggest-groups", help="Suggest element groups by matching element names across datasets"
    )
    _add_common_source_args(p_suggest)
    p_suggest.add_argument(
        "--datasets",
        default=None,
        help="Comma-separated dataset UIDs, source first (defaults to the instance's datasets)",
    )
    p_suggest.add_argument(
        "--output",
        default=None,
        help="Element groups YAML to write (defaults to ./config/element_groups.suggested.yaml)",
    )
    p_suggest.add_argument(
        "--min-confidence",
        choices=CONFIDENCE_CHOICES,
        default=MappingConfidence.MEDIUM.value,
        help="Lowest confidence to accept (default medium)",
    )
    p_suggest.add_argument(
        "--min-similarity",
        type=float,
        default=DEFAULT_MIN_SIMILARITY,
        help=f"Lowest similarity score to consider (default {DEFAULT_MIN_SIMILARITY:g})",
    )
    p_suggest.add_argument(
        "--publish-mapping",
        default=None,
        help="Also write a publish mapping YAML from the source to the second dataset",
    )
    p_suggest.set_defaults(func=cmd_suggest_groups)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        verbose=bool(args.verbose),
        warnings_only=bool(getattr(args, "warnings_only", False)),
        errors_only=bool(getattr(args, "errors_only", False)),
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
