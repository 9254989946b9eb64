#!/usr/bin/env python3
"""Click option helpers for mutually exclusive modes."""

from __future__ import annotations

import click


def _flag_name(ctx: click.Context, name: str) -> str:
    for param in ctx.command.params:
        if param.name == name and param.opts:
            return param.opts[0]
    return f"--{name}"


def _check_mutual_exclusion(
    ctx: click.Context, name: str, not_required_if: list[str], opts: dict
) -> None:
    """Raise UsageError if mutually exclusive options are both present.

    Args:
        ctx: The click context, used to name options as typed.
        name: Parameter name of the current option.
        not_required_if: Parameter names that exclude this one.
        opts: Dictionary of parsed options.

    Raises:
        click.UsageError: If both options are present.
    """
    for other in not_required_if:
        if other in opts:
            msg = (
                f"Options {_flag_name(ctx, name)} and {_flag_name(ctx, other)} "
                "are mutually exclusive"
            )
            raise click.UsageError(msg)


class MutuallyExclusiveOption(click.Option):
    """Click option that enforces mutual exclusivity with other options."""

    def __init__(self, *args, **kwargs):
        """Initialize with not_required_if parameter for mutual exclusion."""
        self.not_required_if = kwargs.pop("not_required_if", [])
        super().__init__(*args, **kwargs)

    def handle_parse_result(self, ctx, opts, args):
        """Check mutual exclusion before handing the value to click."""
        if self.name in opts:
            _check_mutual_exclusion(ctx, self.name, self.not_required_if, opts)
        return super().handle_parse_result(ctx, opts, args)


def parse_tokens(values: tuple[str, ...]) -> dict[str, str]:
    """Turn USER=TOKEN pairs into a token to user mapping.

    Raises:
        click.BadParameter: If a value is not of the form USER=TOKEN.
    """
    tokens: dict[str, str] = {}
    for value in values:
        user, sep, token = value.partition("=")
        if not sep or not user or not token:
            raise click.BadParameter(
                f"expected USER=TOKEN, got {value!r}", param_hint="--token"
            )
        tokens[token] = user
    return tokens
