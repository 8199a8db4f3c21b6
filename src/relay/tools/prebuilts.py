from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Prebuilt interaction tools.
"""

from typing import Any

from pydantic import BaseModel, Field

from .base import ToolContext
from .decorator import tool


class AskUserArgs(BaseModel):
    question: str = Field(description="Question shown to the user.")
    options: list[str] | None = Field(default=None, description="Optional fixed choices.")
    default: str | None = Field(default=None, description="Answer used when nobody can be asked.")


@tool(args_model=AskUserArgs, name="ask_user")
async def ask_user(args: AskUserArgs, ctx: ToolContext) -> Any:
    """Ask the user a question and return their answer."""
    return await ctx.request_input(args.question, options=args.options, default=args.default)


class ConfirmArgs(BaseModel):
    action: str
    description: str = ""
    reversible: bool = False


@tool(args_model=ConfirmArgs, name="confirm_action")
async def confirm_action(args: ConfirmArgs, ctx: ToolContext) -> bool:
    """Ask the user to approve an action. Returns True when approved."""
    return await ctx.request_confirmation(
        args.action,
        description=args.description,
        reversible=args.reversible,
    )
