#!/usr/bin/env python
"""Standalone demo for the shellwrap security pipeline.

This demo shows how hostile input is handled before anything reaches a shell:
1. Per-type sanitization of single values
2. Secure template rendering under each policy level
3. Rejections (allowlists, blocked patterns, fatal warnings)
4. Executing a rendered command with a timeout

Usage:
    python examples/security_demo.py
"""

import asyncio

from shellwrap import PolicyManager, SecureRenderer, ShellwrapError
from shellwrap.security import Sanitizer, SecurityType, ValidationRule
from shellwrap.tools import CommandExecutor


# =============================================================================
# Demo Functions
# =============================================================================


def demo_sanitizer():
    """Demo sanitization of hostile values for every security type."""
    print("\n" + "=" * 60)
    print("Sanitization Demo")
    print("=" * 60)

    sanitizer = Sanitizer(PolicyManager.from_level("moderate"))
    samples = [
        (SecurityType.SAFE, "hello; rm -rf /"),
        (SecurityType.SAFE, "$(whoami)"),
        (SecurityType.FILEPATH, "../../etc/passwd"),
        (SecurityType.FILEPATH, "notes/today.txt"),
        (SecurityType.COMMAND, "git status"),
        (SecurityType.COMMAND, "sudo ls"),
        (SecurityType.TEXT, "it's 5 o'clock && time to go"),
        (SecurityType.UNSAFE, "a | b"),
    ]

    for security_type, value in samples:
        result = sanitizer.sanitize(value, security_type)
        print(f"\n  [{security_type.value:8}] {value!r}")
        print(f"    Value: {result.value!r}")
        if result.warnings:
            print(f"    Warnings: {', '.join(result.warnings)}")
    print()


def demo_rendering():
    """Demo the same template and value under each policy level."""
    print("\n" + "=" * 60)
    print("Secure Rendering Demo")
    print("=" * 60)

    template = "{{ command }} {{ target }}"
    values = {"command": "git log", "target": "src; rm -rf /"}
    rules = {
        "command": ValidationRule(SecurityType.COMMAND),
        "target": ValidationRule(SecurityType.FILEPATH),
    }

    print(f"\n  Template: {template}")
    print(f"  Values:   {values}")
    for level in ("strict", "moderate", "permissive"):
        renderer = SecureRenderer(PolicyManager.from_level(level))
        try:
            print(f"    {level:10} -> {renderer.render(template, values, rules=rules)}")
        except ShellwrapError as e:
            print(f"    {level:10} -> REJECTED ({type(e).__name__}: {e})")
    print()


def demo_rejections():
    """Demo templates refused by the policy (NOTHING is executed)."""
    print("\n" + "=" * 60)
    print("Rejection Demo")
    print("=" * 60)

    cases = [
        ("strict", "ls; echo {{ x }}", {"x": "hi"}),
        ("strict", "echo {{ x }}", {"x": "a;b"}),
        ("moderate", "echo {{ raw.x }}", {"x": "ok; rm -rf /"}),
        ("moderate", "sudo {{ x }}", {"x": "ls"}),
    ]

    for level, template, values in cases:
        renderer = SecureRenderer(PolicyManager.from_level(level))
        try:
            rendered = renderer.render(template, values)
            print(f"\n  [{level}] {template} -> {rendered}")
        except ShellwrapError as e:
            print(f"\n  [{level}] {template}")
            print(f"    {type(e).__name__}: {e}")
    print()


async def demo_execution():
    """Demo rendering and executing a command."""
    print("\n" + "=" * 60)
    print("Execution Demo")
    print("=" * 60)

    manager = PolicyManager.from_level("moderate")
    renderer = SecureRenderer(manager)
    executor = CommandExecutor(manager)

    command = renderer.render("echo {{ greeting }}", {"greeting": "Hello, World; exit 1"})
    print(f"\n  Command: {command}")
    result = await executor.execute(command)
    print(f"    Success: {result.success}")
    print(f"    Output: {result.stdout}")

    print("\n  Command: sleep 10 (timeout: 1s)")
    result = await executor.execute("sleep 10", timeout_seconds=1)
    print(f"    Success: {result.success}")
    print(f"    Error: {result.error}")
    print()


def main():
    """Run all demos."""
    print("\n" + "#" * 60)
    print("#  shellwrap Security Demo")
    print("#" * 60)

    demo_sanitizer()
    demo_rendering()
    demo_rejections()
    asyncio.run(demo_execution())

    print("\n" + "#" * 60)
    print("#  Demo Complete!")
    print("#" * 60 + "\n")


if __name__ == "__main__":
    main()
