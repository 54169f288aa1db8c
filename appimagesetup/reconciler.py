"""
AppImage Setup - Reconciliation
Works out which AppImages have a .desktop file and which do not.
"""

import os
import logging

logger = logging.getLogger(__name__)


def reconcile(bundles, identifiers):
    """Splits bundles into (matched, unmatched) by their short identifier.

    Both lists keep the order of ``bundles``; together they contain every
    bundle exactly once.
    """
    known = frozenset(identifiers)
    matched = []
    unmatched = []
    for bundle in bundles:
        if bundle.identifier in known:
            matched.append(bundle)
        else:
            unmatched.append(bundle)
    return matched, unmatched


class StatusReport:
    """Result of comparing the AppImage directory with the desktop directory."""

    def __init__(self, bundles, descriptor_files, matched, unmatched, orphaned=None, stale=None, collisions=None):
        self.bundles = bundles
        self.descriptor_files = descriptor_files
        self.matched = matched
        self.unmatched = unmatched
        self.orphaned = orphaned or []
        self.stale = stale or {}
        self.collisions = collisions or {}

    def newest(self, identifier):
        """Returns the colliding bundle with the highest parsed version, or None."""
        versioned = [b for b in self.collisions.get(identifier, []) if b.version is not None]
        if not versioned:
            return None
        return max(versioned, key=lambda b: b.version)

    def survivor(self, identifier):
        """The bundle whose .desktop file a bulk create leaves behind (processed last)."""
        group = self.collisions.get(identifier)
        return group[-1] if group else None


def find_collisions(bundles):
    """Groups bundles sharing an identifier; only groups of two or more are returned."""
    groups = {}
    for bundle in bundles:
        groups.setdefault(bundle.identifier, []).append(bundle)
    return {identifier: group for identifier, group in groups.items() if len(group) > 1}


def build_status_report(bundle_store, descriptor_store):
    """Scans both directories and reconciles them."""
    bundles = bundle_store.enumerate()
    descriptor_files = descriptor_store.enumerate()
    identifiers = [descriptor_store.identifier_of(name) for name in descriptor_files]

    matched, unmatched = reconcile(bundles, identifiers)
    logger.info(f"{len(matched)} AppImages with a desktop entry, {len(unmatched)} without")

    bundle_identifiers = {bundle.identifier for bundle in bundles}
    orphaned = [identifier for identifier in identifiers if identifier not in bundle_identifiers]

    stale = {}
    for identifier in identifiers:
        entry = descriptor_store.parse(identifier)
        if entry and entry['target'] and not os.path.exists(entry['target']):
            stale[identifier] = entry['target']

    return StatusReport(
        bundles,
        descriptor_files,
        matched,
        unmatched,
        orphaned=orphaned,
        stale=stale,
        collisions=find_collisions(bundles),
    )


def format_status_report(report, setup_config):
    """Renders a StatusReport as the lines printed by ``--list``."""
    lines = [
        f"Scanning {setup_config.app_dir} for *{setup_config.bundle_extension} …",
        f"Scanning {setup_config.desktop_dir} for {setup_config.prefix}-*{setup_config.desktop_extension} …",
        "=== AppImages with a matching .desktop entry ===",
    ]
    lines.extend(f"  ✔ {bundle.filename}" for bundle in report.matched)
    lines.append("")
    lines.append("=== AppImages missing a .desktop entry ===")
    lines.extend(f"  ✘ {bundle.filename}" for bundle in report.unmatched)

    if report.orphaned:
        lines.append("")
        lines.append("=== .desktop entries without an AppImage ===")
        for identifier in report.orphaned:
            lines.append(f"  ? {identifier}")

    if report.stale:
        lines.append("")
        lines.append("=== .desktop entries pointing at a missing file ===")
        for identifier, target in sorted(report.stale.items()):
            lines.append(f"  ✘ {identifier} -> {target}")

    if report.collisions:
        lines.append("")
        lines.append("=== AppImages sharing a short name ===")
        for identifier in sorted(report.collisions):
            survivor = report.survivor(identifier)
            newest = report.newest(identifier)
            lines.append(f"  {identifier}:")
            for bundle in report.collisions[identifier]:
                notes = []
                if bundle is survivor:
                    notes.append("used for the desktop entry")
                if bundle is newest:
                    notes.append("newest")
                suffix = f" ({', '.join(notes)})" if notes else ""
                lines.append(f"    - {bundle.filename}{suffix}")
    return lines
