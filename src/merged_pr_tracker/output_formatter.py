"""
Output formatting for release presence analysis results.
"""

import json
from datetime import datetime

from .data_models import (
    PATTERN_DISPLAY_ORDER,
    AnalysisResult,
    BranchAnalysis,
    GAFact,
    GAStatusKind,
    VersionComparison,
    format_date,
)
from .tag_resolver import version_sort_key


class AnalysisFormatter:
    """Renders an AnalysisResult for the console or as JSON."""

    def format_table_output(self, result: AnalysisResult) -> str:
        """Format result as a readable summary grouped by branch family."""
        change = result.change
        lines = []

        lines.append("=== PR Analysis Summary ===")
        if change.number is not None:
            lines.append(f"PR #{change.number}: {change.title}")
        else:
            lines.append(f"Commit: {change.title}")
        lines.append(f"Hash: {change.sha}")
        if change.merged_into:
            lines.append(
                f"Merged to '{change.merged_into}' at: {format_date(change.merged_at)}"
            )
        if change.url:
            lines.append(f"URL: {change.url}")

        lines.extend(self._format_related(result))

        lines.append("")
        lines.append("=== Release Branch Analysis ===")

        found = self._collect_found_branches(result)
        if not found:
            lines.append("")
            lines.append("Not found in any release branch")
        else:
            lines.append("")
            lines.append(f"✓ Found in {len(found)} release branches:")

            for pattern in PATTERN_DISPLAY_ORDER:
                group = sorted(
                    (analysis for analysis in found if analysis.branch.pattern is pattern),
                    key=lambda analysis: version_sort_key(analysis.branch.version),
                )
                if not group:
                    continue
                lines.append("")
                lines.append(f"  {pattern.description} branches ({len(group)}):")
                for analysis in group:
                    lines.extend(self._format_branch(analysis, result.analyzed_at))

        lines.append("")
        lines.append(
            f"Analysis completed at: {result.analyzed_at.strftime('%m-%d-%Y %H:%M:%S')}"
        )
        return "\n".join(lines)

    def _format_related(self, result: AnalysisResult) -> list[str]:
        ticket = result.ticket_analysis
        if ticket is None:
            return []

        lines = [""]
        lines.append(f"📋 JIRA Ticket: {ticket.main_ticket}")
        if not ticket.success:
            lines.append(f"  Related PR lookup failed: {ticket.error_message}")
            return lines

        count = len(result.related_changes)
        if count == 0:
            lines.append("  No related backport PRs")
            return lines

        lines.append(f"🔗 Found {count} related backport PR{'' if count == 1 else 's'}:")
        for related in result.related_changes:
            lines.append(f"  • PR #{related.change.number}: {related.change.title}")
            lines.append(f"    URL: {related.change.url}")
            lines.append(f"    Hash: {related.change.sha}")
        return lines

    def _collect_found_branches(self, result: AnalysisResult) -> list[BranchAnalysis]:
        """Found branches of the change, plus those only a backport reached."""
        by_name: dict[str, BranchAnalysis] = {
            analysis.branch.name: analysis for analysis in result.found_branches()
        }
        for related in result.related_changes:
            for analysis in related.branches:
                if analysis.found and analysis.branch.name not in by_name:
                    by_name[analysis.branch.name] = analysis
        return list(by_name.values())

    def _format_branch(self, analysis: BranchAnalysis, now: datetime) -> list[str]:
        branch = analysis.branch
        line = f"    - {branch.name} (v{branch.version})"
        if analysis.is_next_version:
            line += " (Next Version)"
        if analysis.presence.merged_at is not None:
            line += f" - merged at {format_date(analysis.presence.merged_at)}"
        lines = [line]

        if analysis.is_next_version:
            return lines

        release_lines = []
        if analysis.released_tag:
            release_lines.append(f"        {analysis.released_tag}")

        released_products = set()
        for fact in analysis.upcoming:
            if fact.is_released(now) and fact.product not in released_products:
                released_products.add(fact.product)
                text = (
                    f"        {fact.product.value} {fact.version}: "
                    f"Released (GA: {format_date(fact.ga_date)})"
                )
                snapshot = fact.snapshot
                if snapshot is not None and snapshot.component_sha:
                    text += (
                        f" ({snapshot.component_name} latest commit SHA: "
                        f"{snapshot.component_sha[:8]})"
                    )
                release_lines.append(text)
        for fact in analysis.upcoming:
            if fact.product not in released_products:
                released_products.add(fact.product)
                release_lines.append(
                    f"        {fact.product.value} {fact.version}: "
                    f"Not released yet (GA: {format_date(fact.ga_date)})"
                )

        if analysis.ga_status is not None and not analysis.ga_status.calendar_available:
            release_lines.append("        GA status unknown - release calendar unavailable")
        elif analysis.ga_status is not None and not analysis.upcoming:
            release_lines.append(
                "        Not released yet - no GA versions defined for this branch"
            )

        if release_lines:
            lines.append("      Release Version:")
            lines.extend(release_lines)

        if analysis.ga_status is not None:
            latest = [
                fact
                for fact in (analysis.ga_status.acm, analysis.ga_status.mce)
                if fact.status is GAStatusKind.GA
            ]
            if latest:
                lines.append("      Latest GA Status:")
                lines.extend(self._format_ga_fact(fact) for fact in latest)

        lines.append("")
        return lines

    def _format_ga_fact(self, fact: GAFact) -> str:
        return (
            f"        {fact.product.value} {fact.version}: "
            f"Released (GA: {format_date(fact.ga_date)})"
        )

    def format_comparison_table(self, comparison: VersionComparison) -> str:
        """Format a release diff as a commit listing."""
        lines = ["=== Version Comparison ==="]
        lines.append(f"Target version: {comparison.version}")
        lines.append(f"Previous version: {comparison.previous_version}")
        if comparison.missing_patch:
            lines.append(
                "Note: Comparing with nearest available patch "
                f"({comparison.missing_patch} not found)"
            )

        lines.append("")
        lines.append(f"=== Changes in {comparison.version} ===")
        lines.append(f"Total commits: {len(comparison.commits)}")
        lines.append("")
        if not comparison.commits:
            lines.append(
                f"No commits found between {comparison.previous_version} "
                f"and {comparison.version}"
            )
        for commit in comparison.commits:
            date = (
                commit.date.strftime("%Y-%m-%d %H:%M:%S") if commit.date else "Unknown date"
            )
            lines.append(f"  {commit.short_sha}  {date}  {commit.title}")

        if comparison.repository:
            lines.append("")
            lines.append(f"Repository: {comparison.repository}")
        return "\n".join(lines)

    def format_json_output(self, result: AnalysisResult | VersionComparison) -> str:
        """Format result as JSON."""
        return json.dumps(result.to_dict(), indent=2)

    def render(
        self, result: AnalysisResult | VersionComparison, format_type: str = "table"
    ) -> str:
        """Render an analysis or a version comparison in the given format."""
        if format_type == "json":
            return self.format_json_output(result)
        if format_type == "table":
            if isinstance(result, VersionComparison):
                return self.format_comparison_table(result)
            return self.format_table_output(result)
        raise ValueError(f"Unsupported format: {format_type}")

    def save_to_file(
        self,
        result: AnalysisResult | VersionComparison,
        output_path: str,
        format_type: str = "json",
    ) -> None:
        """Save formatted output to file."""
        content = self.render(result, format_type)

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)
