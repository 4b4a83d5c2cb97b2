"""Demo tools that answer from static data."""

import json
from typing import (
    Any,
    Mapping,
)

from pydantic import BaseModel

from looptool.agent.tool_executor import (
    ToolRegistry,
    parse_arguments,
)


class _CityArgs(BaseModel):
    city: str


class _NumbersArgs(BaseModel):
    a: float
    b: float


class _TimezoneArgs(BaseModel):
    timezone: str


class _QueryArgs(BaseModel):
    query: str


class _HostArgs(BaseModel):
    hostname_or_ip: str


def _string_param(description: str) -> dict:
    return {"type": "string", "description": description}


def get_weather(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_CityArgs, arguments, "get_weather")
    return json.dumps(
        {
            "city": args.city,
            "temperature": "18°C",
            "condition": "Partly cloudy",
            "humidity": "65%",
        },
        ensure_ascii=False,
    )


def add_numbers(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_NumbersArgs, arguments, "add_numbers")
    total = args.a + args.b
    return json.dumps({"result": int(total) if total.is_integer() else total})


def get_time(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_TimezoneArgs, arguments, "get_time")
    return json.dumps({"timezone": args.timezone, "time": "14:30:00", "date": "2024-01-15"})


def search_library_catalog(arguments: Mapping[str, Any]) -> str:
    parse_arguments(_QueryArgs, arguments, "search_library_catalog")
    return "found 4 books"


def ping(arguments: Mapping[str, Any]) -> str:
    parse_arguments(_HostArgs, arguments, "ping")
    return "host is up"


def register(registry: ToolRegistry) -> None:
    """Add the demo tools to *registry*."""
    registry.register(
        "get_weather",
        "Get the current weather for a given city",
        {
            "type": "object",
            "required": ["city"],
            "properties": {"city": _string_param("The city name, e.g. 'Paris' or 'New York'")},
        },
        get_weather,
    )
    registry.register(
        "add_numbers",
        "Add two numbers together and return the result",
        {
            "type": "object",
            "required": ["a", "b"],
            "properties": {
                "a": {"type": "number", "description": "The first number"},
                "b": {"type": "number", "description": "The second number"},
            },
        },
        add_numbers,
    )
    registry.register(
        "get_time",
        "Get the current time in a given timezone",
        {
            "type": "object",
            "required": ["timezone"],
            "properties": {
                "timezone": _string_param(
                    "The timezone, e.g. 'UTC', 'America/New_York', 'Europe/London'"
                )
            },
        },
        get_time,
    )
    registry.register(
        "search_library_catalog",
        "Search for availability of a publication in a library catalog",
        {
            "type": "object",
            "required": ["query"],
            "properties": {
                "query": _string_param(
                    "a query string to put into a catalog search, can be an author, title, isbn, "
                    "issn, or a combination of those"
                )
            },
        },
        search_library_catalog,
    )
    registry.register(
        "ping",
        "find out connectivity to a computer on the network with ping",
        {
            "type": "object",
            "required": ["hostname_or_ip"],
            "properties": {
                "hostname_or_ip": _string_param(
                    "a hostname (e.g. like google.com) or an ip v4 address (like 1.2.4.5)"
                )
            },
        },
        ping,
    )
