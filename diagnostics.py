"""
Diagnostic: run parser + normalization only (no network, no storage).
Reports which canonical fields are filled vs missing for each saved HTML page.
"""

from pathlib import Path

from models import SPEC_FIELD_NAMES
from normalizer import normalize_specs
from parser import parse_html


def diagnose_file(filepath: Path) -> dict:
    html = filepath.read_text(encoding="utf-8")
    parsed = parse_html(html)
    specs = normalize_specs(parsed.rows)

    return {
        "file": filepath.name,
        "title": parsed.title,
        "parser": {
            "spec_rows": len(parsed.rows),
            "groups": sorted({row.group for row in parsed.rows if row.group}),
            "image_urls": len(parsed.image_urls),
            "raw_keys": len(parsed.raw_fields),
        },
        "filled": specs.filled_fields,
        "missing": specs.missing_fields,
        "composite_only": sorted(k for k, tier in specs.resolved_by.items() if tier == "composite"),
        "unmapped": sorted(specs.extra_fields),
        "fields": {name: specs.fields[name] for name in specs.filled_fields},
    }


def print_report(reports: list[dict]) -> None:
    for report in reports:
        print(f"{'=' * 70}")
        print(f"  {report['file']}  {report['title'] or '(no title)'}")
        print(f"{'=' * 70}")

        p = report["parser"]
        print(f"  Parser: {p['spec_rows']} rows | {len(p['groups'])} groups | {p['image_urls']} imgs | {p['raw_keys']} raw keys")
        if p["groups"]:
            print(f"  Groups: {p['groups']}")

        print(f"\n  Filled ({len(report['filled'])}/{len(SPEC_FIELD_NAMES)}):")
        for field in report["filled"]:
            value = report["fields"][field]
            print(f"    {field}: {value[:100]}{'...' if len(value) > 100 else ''}")

        if report["missing"]:
            print(f"\n  MISSING ({len(report['missing'])}): {report['missing']}")
        else:
            print("\n  All fields filled!")
        if report["unmapped"]:
            print(f"  Unmapped labels: {report['unmapped']}")
        print()

    if len(reports) < 2:
        return

    # Summary table
    print(f"\n{'=' * 70}")
    print("SUMMARY: Field coverage across all files")
    print(f"{'=' * 70}")
    print(f"{'Field':<24} ", end="")
    for r in reports:
        print(f"{r['file'][:12]:<14}", end="")
    print()
    print("-" * 90)

    for field in SPEC_FIELD_NAMES:
        print(f"{field:<24} ", end="")
        for r in reports:
            print(f"{'OK' if field in r['filled'] else 'MISSING':<14}", end="")
        print()
