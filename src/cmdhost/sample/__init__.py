"""Sample application: a greeter built on a cmdhost command tree.

Run it with ``python -m cmdhost`` or the ``cmdhost-sample`` script::

    cmdhost-sample greet --subject Ada
    cmdhost-sample wait --seconds 5
"""

from cmdhost.sample.commands import (
    GreetCommand,
    GreetingOptions,
    SampleGroup,
    WaitCommand,
    build_definition,
)

SETTINGS_PACKAGE: str = "cmdhost.sample"
"""Package whose embedded ``appsettings*.json`` files configure the sample."""

__all__: list[str] = [
    "GreetCommand",
    "GreetingOptions",
    "SETTINGS_PACKAGE",
    "SampleGroup",
    "WaitCommand",
    "build_definition",
]
