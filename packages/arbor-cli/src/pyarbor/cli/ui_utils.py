from typing import List, Optional

import click
import typer
from pyarbor.common.messaging import bus


def prompt_for_confirmation(prompt: str, detail_lines: Optional[List[str]] = None, default: bool = False) -> bool:
    if detail_lines:
        for line in detail_lines:
            typer.secho(line, fg=typer.colors.YELLOW, err=True)
        typer.echo("", err=True)

    prompt_suffix = bus.get("prompt.suffix.yesDefault") if default else bus.get("prompt.suffix.noDefault")
    typer.secho(prompt + prompt_suffix, nl=False, err=True)

    try:
        # click.getchar() 会尝试从 /dev/tty 读取
        char = click.getchar(echo=False)
        click.echo(char, err=True)
    except (OSError, EOFError):
        # 在没有 tty 的环境中 (例如 CI runner) 安全失败
        bus.info("prompt.info.nonInteractive")
        return False

    if not char or char in ("\r", "\n"):
        return default

    if char.lower() == "y":
        return True
    if char.lower() == "n":
        return False

    return default
