"""
Interactive decision points for a provisioning run.
"""

from typing import Any, Dict, List, Protocol, Sequence, Tuple

import click

# (label, value) pairs offered to the user
Choice = Tuple[str, str]


class Prompter(Protocol):
    def confirm_run(self, account: Dict[str, str], summary: Dict[str, Any]) -> bool:
        ...

    def confirm(self, message: str, default: bool = False) -> bool:
        ...

    def select(self, message: str, choices: Sequence[Choice]) -> str:
        ...

    def checkbox(self, message: str, choices: Sequence[Choice]) -> List[str]:
        ...


class ClickPrompter:
    """Prompts on the terminal through click."""

    def confirm_run(self, account: Dict[str, str], summary: Dict[str, Any]) -> bool:
        click.echo("\n=== Infrastructure Creation Configuration ===")
        click.echo("AWS Account Details:")
        click.echo(f"Account ID: {account.get('account_id', 'Unknown')}")
        click.echo(f"ARN: {account.get('arn', 'Unknown')}")
        click.echo("\nInfrastructure Configuration:")
        for key, value in summary.items():
            click.echo(f"  {key}: {value}")
        return click.confirm("Do you want to proceed with infrastructure creation?", default=False)

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(message, default=default)

    def select(self, message: str, choices: Sequence[Choice]) -> str:
        click.echo(message)
        for index, (label, _) in enumerate(choices, start=1):
            click.echo(f"  {index}) {label}")
        picked = click.prompt("Choice", type=click.IntRange(1, len(choices)), default=1)
        return choices[picked - 1][1]

    def checkbox(self, message: str, choices: Sequence[Choice]) -> List[str]:
        click.echo(message)
        for index, (label, _) in enumerate(choices, start=1):
            click.echo(f"  {index}) {label}")
        raw = click.prompt("Numbers separated by commas (empty for none)", default="", show_default=False)
        picked = []
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            if not part.isdigit() or not 1 <= int(part) <= len(choices):
                raise click.BadParameter(f"Invalid choice: {part}")
            value = choices[int(part) - 1][1]
            if value not in picked:
                picked.append(value)
        return picked


class NonInteractivePrompter:
    """
    Answers for unattended runs (``--yes``).

    The run itself is approved; optional choices such as reusing an existing
    network are declined so the run always builds its own topology.
    """

    def confirm_run(self, account: Dict[str, str], summary: Dict[str, Any]) -> bool:
        return True

    def confirm(self, message: str, default: bool = False) -> bool:
        return False

    def select(self, message: str, choices: Sequence[Choice]) -> str:
        return choices[0][1]

    def checkbox(self, message: str, choices: Sequence[Choice]) -> List[str]:
        return []
