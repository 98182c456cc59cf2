"""
Static loader table for the bundled node corpus.

Categories appear in table order; within a category, entries are listed in
the order search and category lookups visit them.
"""

from typing import Dict, List, Tuple

from ..loaders import LoaderEntry, bundled_entry

BASE = "n8n-nodes-base"
LANGCHAIN = "@n8n/n8n-nodes-langchain"

# (category label, data directory, [(short name, full node name), ...])
CATALOG_LAYOUT: List[Tuple[str, str, List[Tuple[str, str]]]] = [
    (
        "Core Nodes",
        "core",
        [
            ("webhook", f"{BASE}.webhook"),
            ("function", f"{BASE}.function"),
            ("set", f"{BASE}.set"),
            ("if", f"{BASE}.if"),
            ("switch", f"{BASE}.switch"),
            ("merge", f"{BASE}.merge"),
            ("http-request", f"{BASE}.httpRequest"),
        ],
    ),
    (
        "AI Nodes",
        "ai",
        [
            ("openai", f"{LANGCHAIN}.openAi"),
            ("claude", f"{LANGCHAIN}.anthropic"),
            ("anthropic-chat-model", f"{LANGCHAIN}.lmChatAnthropic"),
            ("langchain-openai", f"{LANGCHAIN}.lmChatOpenAi"),
            ("ai-agent", f"{LANGCHAIN}.agent"),
            ("ai-transform", f"{BASE}.aiTransform"),
        ],
    ),
    (
        "Database Nodes",
        "database",
        [
            ("postgres", f"{BASE}.postgres"),
            ("mysql", f"{BASE}.mySql"),
            ("mongodb", f"{BASE}.mongoDb"),
            ("redis", f"{BASE}.redis"),
        ],
    ),
    (
        "Communication Nodes",
        "communication",
        [
            ("slack", f"{BASE}.slack"),
            ("discord", f"{BASE}.discord"),
            ("telegram", f"{BASE}.telegram"),
            ("gmail", f"{BASE}.gmail"),
            ("twilio", f"{BASE}.twilio"),
        ],
    ),
    (
        "Productivity Nodes",
        "productivity",
        [
            ("google-sheets", f"{BASE}.googleSheets"),
            ("notion", f"{BASE}.notion"),
            ("airtable", f"{BASE}.airtable"),
            ("trello", f"{BASE}.trello"),
            ("asana", f"{BASE}.asana"),
        ],
    ),
]

# Nodes loaded eagerly when the registry is constructed
CORE_NODE_FILES: List[str] = [
    "nodes/core/webhook.json",
    "nodes/core/function.json",
    "nodes/core/set.json",
    "nodes/core/if.json",
    "nodes/core/http-request.json",
]


def build_loader_table() -> Dict[str, List[LoaderEntry]]:
    """Category -> loader entries, in CATALOG_LAYOUT order."""
    return {
        category: [
            bundled_entry(category, short_name, directory, node_name)
            for short_name, node_name in entries
        ]
        for category, directory, entries in CATALOG_LAYOUT
    }
