#!/usr/bin/env python3
"""
CLI for legal PII detection and anonymization
"""

import argparse
import json
import logging
import os
import sys
import time
from collections import defaultdict
from datetime import datetime

from legal_anonymizer import (
    AnonymizationSettings,
    ConfigurationError,
    DetectionMode,
    create_anonymizer
)
from legal_anonymizer.config import DEFAULT_FILTER_FILE, SUPPORTED_LANGUAGES
from legal_anonymizer.logging_config import setup_logging

logger = logging.getLogger("anonymize_pii")

MODE_CHOICES = {
    "pattern": DetectionMode.PATTERN_ONLY,
    "recognizer": DetectionMode.RECOGNIZER_ONLY,
    "hybrid": DetectionMode.HYBRID
}


def format_metadata(metadata):
    """Format metadata dictionary into a readable text format"""
    lines = []
    lines.append("=" * 80)
    lines.append("PII ANONYMIZATION METADATA")
    lines.append("=" * 80)
    lines.append(f"Generated: {metadata.get('processing_timestamp', 'N/A')}")
    lines.append(f"Input Files: {', '.join(metadata.get('input_files', [])) or 'N/A'}")
    lines.append("")

    # 1. Replacement mapping
    lines.append("1. REPLACEMENT MAPPING (Token → Canonical Entity)")
    lines.append("-" * 40)
    mapping = metadata.get('replacement_map', {})
    if mapping:
        for key, token in sorted(mapping.items(), key=lambda item: item[1]):
            lines.append(f"  {token} → {key}")
    else:
        lines.append("  No entities replaced")
    lines.append("")

    # 2. Individual entity occurrences
    lines.append("2. INDIVIDUAL ENTITY OCCURRENCES")
    lines.append("-" * 40)
    entities = metadata.get('entities', [])
    if entities:
        for ent in entities[:20]:
            lines.append(
                f"  [{ent['entity_type']}] \"{ent['text']}\" at {ent['start']}-{ent['end']} "
                f"(score: {ent['confidence']}, source: {ent['source']}) → {ent['replacement']}"
            )
        if len(entities) > 20:
            lines.append(f"  ... and {len(entities) - 20} more entities")
    else:
        lines.append("  No entities detected")
    lines.append("")

    # 3. Linked mentions
    lines.append("3. LINKED MENTIONS")
    lines.append("-" * 40)
    groups = metadata.get('linking', [])
    if groups:
        for group in groups:
            lines.append(f"  {group['entity_type']}: {group['canonical']} → {group['replacement']}")
            lines.append(f"    Mentions: {', '.join(group['mentions'])}")
    else:
        lines.append("  No linked mentions")
    lines.append("")

    # 4. Entity type distribution
    lines.append("4. ENTITY TYPE DISTRIBUTION")
    lines.append("-" * 40)
    distribution = metadata.get('statistics', {}).get('entity_counts', {})
    if distribution:
        total = sum(distribution.values())
        for entity_type, count in sorted(distribution.items(), key=lambda x: x[1], reverse=True):
            percentage = (count / total * 100) if total > 0 else 0
            lines.append(f"  {entity_type}: {count} ({percentage:.1f}%)")
    else:
        lines.append("  No entities detected")
    lines.append("")

    # 5. Processing configuration
    lines.append("5. PROCESSING CONFIGURATION")
    lines.append("-" * 40)
    for key, value in metadata.get('configuration', {}).items():
        lines.append(f"  {key}: {value}")
    lines.append("")

    # 6. Warnings
    lines.append("6. WARNINGS")
    lines.append("-" * 40)
    warnings = metadata.get('warnings', [])
    if warnings:
        for warning in warnings:
            lines.append(f"  {warning}")
    else:
        lines.append("  No warnings")
    lines.append("")

    lines.append("=" * 80)
    lines.append("END OF METADATA REPORT")
    lines.append("=" * 80)

    return "\n".join(lines)


def build_settings(args) -> AnonymizationSettings:
    """Settings from an optional JSON file, overridden by command line flags"""
    data = {}
    if args.settings:
        with open(args.settings, "r", encoding="utf-8") as f:
            data = json.load(f)
    if args.language:
        data["language"] = args.language
    if args.threshold is not None:
        data["confidence_threshold"] = args.threshold
    if args.mode:
        data["mode"] = MODE_CHOICES[args.mode]
    if args.entity_types:
        data["entity_types"] = [t for t in args.entity_types.split(",") if t.strip()]
    if args.no_preserve_legal:
        data["preserve_legal_references"] = False
    if args.independent:
        data["consistent_replacement"] = False
    return AnonymizationSettings.from_dict(data)


def collect_linking(results):
    """Group replaced mentions by token for the metadata report"""
    groups = {}
    for result in results:
        for entity in result.entities:
            group = groups.setdefault(entity.replacement, {
                "entity_type": entity.entity_type.value,
                "canonical": entity.canonical,
                "replacement": entity.replacement,
                "mentions": []
            })
            if entity.text not in group["mentions"]:
                group["mentions"].append(entity.text)
    return [g for g in groups.values() if len(g["mentions"]) > 1]


def output_names(output, input_path):
    if output:
        base_name = os.path.splitext(output)[0]
    else:
        base_name = os.path.splitext(input_path)[0] + "_anonymized"
    return f"{base_name}.txt", f"{base_name}_meta.json", f"{base_name}_meta.txt"


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Detect and anonymize PII in legal text while keeping legal references'
    )

    parser.add_argument('--input', type=str, nargs='+', default=['data/text.txt'],
                        help='Input text file(s); several files form one batch')
    parser.add_argument('--output', type=str, default=None,
                        help='Output base name (single input only)')
    parser.add_argument('--language', type=str, default=None, choices=SUPPORTED_LANGUAGES,
                        help='Language code (default: en)')
    parser.add_argument('--threshold', type=float, default=None,
                        help='Confidence threshold (0.0-1.0)')
    parser.add_argument('--mode', type=str, default=None, choices=sorted(MODE_CHOICES),
                        help='Detection mode (default: hybrid)')
    parser.add_argument('--entity-types', type=str, default=None,
                        help='Comma separated entity types to anonymize')
    parser.add_argument('--no-preserve-legal', action='store_true',
                        help='Do not protect spans overlapping legal references')
    parser.add_argument('--independent', action='store_true',
                        help='Give every occurrence its own token')
    parser.add_argument('--settings', type=str, default=None,
                        help='JSON file with anonymization settings')
    parser.add_argument('--filter', action='store_true',
                        help='Apply false positive filtering to recognizer output')
    parser.add_argument('--filter-file', type=str, default=DEFAULT_FILTER_FILE,
                        help='JSON file with false positives')
    parser.add_argument('--detect-only', action='store_true',
                        help='Print detected entities as JSON instead of anonymizing')
    parser.add_argument('--log-level', type=str, default='INFO',
                        help='Logging level')

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    for path in args.input:
        if not os.path.exists(path):
            print(f"Error: Input file {path} not found", file=sys.stderr)
            return 1
    if args.output and len(args.input) > 1:
        print("Error: --output needs a single input file", file=sys.stderr)
        return 1

    try:
        settings = build_settings(args)
    except (ConfigurationError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    texts = []
    for path in args.input:
        with open(path, "r", encoding="utf-8") as f:
            texts.append(f.read())

    anonymizer = create_anonymizer(
        use_recognizer=settings.mode.uses_recognizer,
        filter_false_positives=args.filter,
        filter_file=args.filter_file
    )

    if args.detect_only:
        output = {}
        for path, text in zip(args.input, texts):
            entities = anonymizer.detect_only(text, settings.language, settings.mode)
            output[path] = [e.to_dict() for e in entities]
        print(json.dumps(output, ensure_ascii=False, indent=2))
        return 0

    start_time = time.time()
    results = anonymizer.anonymize_batch(texts, settings)
    processing_time = time.time() - start_time
    print(f"✓ Anonymized {len(results)} document(s)", file=sys.stderr)

    statistics = anonymizer.get_statistics().to_dict()
    linking = collect_linking(results)

    for path, result in zip(args.input, results):
        text_file, meta_file, report_file = output_names(args.output, path)

        entity_type_counts = defaultdict(int)
        for entity in result.entities:
            entity_type_counts[entity.entity_type.value] += 1

        metadata = {
            "replacement_map": anonymizer.replacement_map.snapshot(),
            "entities": [e.to_dict() for e in result.entities],
            "replacements": [list(pair) for pair in result.replacements],
            "linking": linking,
            "document_distribution": dict(entity_type_counts),
            "statistics": statistics,
            "configuration": settings.to_dict(),
            "warnings": result.warnings,
            "processing_time_seconds": round(processing_time, 3),
            "processing_timestamp": datetime.now().isoformat(),
            "input_files": [path]
        }

        with open(text_file, "w", encoding="utf-8") as f:
            f.write(result.anonymized_text)
        print(f"✓ Anonymized text saved to {text_file}", file=sys.stderr)

        with open(meta_file, "w", encoding="utf-8") as f:
            json.dump(metadata, f, ensure_ascii=False, indent=2)
        with open(report_file, "w", encoding="utf-8") as f:
            f.write(format_metadata(metadata))
        print(f"✓ Metadata saved to {meta_file}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
