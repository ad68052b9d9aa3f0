"""LogSoul - Report and alert output"""

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .models import Alert, AnalysisResult, LogEntry
from .patterns import SEVERITY_COLORS


def print_report(analysis: AnalysisResult, console: Console, health_score: Optional[int] = None):
    console.print("\n" + "═" * 70, style="cyan")
    console.print(f"              LOGSOUL REPORT: {analysis.domain}", style="bold cyan")
    console.print("═" * 70, style="cyan")

    threats = analysis.security_threats
    error_color = 'red' if analysis.error_rate > 5 else 'green'
    summary = (
        f"Time Range: [cyan]{analysis.time_range}[/]\n"
        f"Total Requests: [cyan]{analysis.total_requests:,}[/]\n"
        f"Error Rate: [{error_color}]{analysis.error_rate:.2f}%[/]\n"
        f"Avg Response Time: [cyan]{analysis.avg_response_time:.0f}ms[/]\n"
        f"Security Threats: [{'red' if threats else 'green'}]{len(threats)}[/]"
    )
    if health_score is not None:
        color = 'green' if health_score >= 80 else 'yellow' if health_score >= 50 else 'red'
        summary += f"\nHealth Score: [{color}]{health_score}[/]"
    console.print(Panel.fit(summary, title="Summary", border_style="cyan"))

    if threats:
        console.print("\n" + "─" * 70, style="cyan")
        console.print("SECURITY THREATS", style="bold red")
        table = Table(box=box.ROUNDED)
        table.add_column("Type", style="cyan")
        table.add_column("Severity")
        table.add_column("Count", style="red")
        table.add_column("Description")
        for threat in threats:
            color = SEVERITY_COLORS.get(threat.severity, 'white')
            table.add_row(
                threat.type.replace('_', ' ').title(),
                f"[{color}]{threat.severity.upper()}[/]",
                str(threat.count),
                escape(threat.description),
            )
        console.print(table)

    if analysis.performance_issues:
        console.print("\n" + "─" * 70, style="cyan")
        console.print("PERFORMANCE ISSUES", style="bold yellow")
        for issue in analysis.performance_issues:
            color = SEVERITY_COLORS.get(issue.severity, 'white')
            console.print(f"  [{color}]{issue.severity.upper()}[/] {issue.description}")

    for title, rows, label in (
        ("TOP PAGES", analysis.top_pages, "Path"),
        ("TOP IPs (by requests)", analysis.top_ips, "IP Address"),
        ("TOP ERRORS", analysis.top_errors, "Path"),
    ):
        if not rows:
            continue
        console.print("\n" + "─" * 70, style="cyan")
        console.print(title, style="bold")
        table = Table(box=box.ROUNDED)
        table.add_column(label, style="cyan")
        table.add_column("Requests", style="white")
        for value, count in rows:
            table.add_row(escape(value), str(count))
        console.print(table)

    if analysis.status_code_distribution:
        console.print("\n" + "─" * 70, style="cyan")
        console.print("STATUS CODES", style="bold")
        for group, count in sorted(analysis.status_code_distribution.items()):
            color = 'green' if group < '4' else 'yellow' if group < '5' else 'red'
            console.print(f"  {group}: [{color}]{count}[/]")

    console.print("\n" + "═" * 70, style="cyan")


def format_alert(alert: Alert, domain_name: Optional[str] = None) -> str:
    color = SEVERITY_COLORS.get(alert.severity, 'white')
    where = f" ({domain_name})" if domain_name else ""
    return f"[{color}]\\[{alert.severity.upper()}][/]{escape(where)} {escape(alert.message)}"


def print_alert(alert: Alert, console: Console, domain_name: Optional[str] = None):
    console.print(format_alert(alert, domain_name))


def print_entry(entry: LogEntry, console: Console):
    color = 'green' if entry.status < 400 else 'yellow' if entry.status < 500 else 'red'
    console.print(
        f"[dim]{entry.timestamp:%Y-%m-%d %H:%M:%S}[/] "
        f"[cyan]{entry.ip:15}[/] "
        f"[{color}]{entry.status}[/] {escape(entry.method)} {escape(entry.path)}",
        highlight=False,
    )
