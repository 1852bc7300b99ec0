#!/usr/bin/env python3
"""
Seed the brand SQLite DB for demos or tests.

Creates data/bos.db (if missing) with every table, then inserts demo brand
colours, guidelines, knowledge documents and assets for the default brand,
the default link tag set and one MCP server API key (printed once).
Use --reset to clear the brand tables first.

Run from project root:

    python scripts/seed_brand_db.py
    python scripts/seed_brand_db.py --reset
"""

import argparse
import sys
from pathlib import Path

# Project root on path so "app" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from app.core.config import DEFAULT_BRAND_ID
from app.core.db import get_conn, init_db, new_id, now_iso, to_json
from app.mcp.auth import create_api_key
from app.services.link_tags import ensure_default_tags

BRAND_TABLES = ("brand_colors", "brand_guidelines", "brand_documents", "brand_assets", "short_link_tags")

# (name, slug, hex, rgb, group, role, text colour, usage)
SEED_COLORS = [
    ("Charcoal", "charcoal", "#191919", "25, 25, 25", "brand", "primary", "light", "Primary dark background and body text."),
    ("Vanilla", "vanilla", "#FFFAEE", "255, 250, 238", "brand", "primary", "dark", "Primary light background."),
    ("Aperol", "aperol", "#FE5102", "254, 81, 2", "brand", "accent", "light", "Accent only: calls to action and highlights, never large fills."),
    ("Gray 500", "gray-500", "#6B6B6B", "107, 107, 107", "mono-scale", None, "light", "Secondary text."),
    ("Gray 200", "gray-200", "#E5E5E5", "229, 229, 229", "mono-scale", None, "dark", "Borders and dividers."),
]

# (title, slug, type, url, category, is_primary)
SEED_GUIDELINES = [
    ("Brand Guidelines", "brand-guidelines", "pdf", "https://example.com/brand-guidelines.pdf", "brand-identity", 1),
    ("Pitch Deck Template", "pitch-deck", "figma", "https://www.figma.com/file/pitch-deck", "presentations", 0),
]

# (title, category, section, content)
SEED_DOCUMENTS = [
    (
        "Brand Identity",
        "brand-identity",
        "Overview",
        "Open Session is a creative studio. The brand is warm, direct and crafted. "
        "Use Charcoal and Vanilla as the base palette with Aperol as a sparing accent.",
    ),
    (
        "Tone of Voice",
        "writing-styles",
        "Voice",
        "Write plainly and confidently. Prefer short sentences, active voice and concrete nouns. "
        "Avoid jargon, hype words and exclamation marks.",
    ),
    (
        "Logo Usage",
        "brand-identity",
        "Logo",
        "Keep clear space equal to the height of the wordmark. Never stretch, recolour or add effects to the logo.",
    ),
    (
        "Typography",
        "brand-identity",
        "Type",
        "Headlines use Neue Haas Grotesk Display; body copy uses Offbit for accents and Inter for long text.",
    ),
]

# (name, filename, category, variant, storage_path, mime type)
SEED_ASSETS = [
    ("Wordmark Charcoal", "wordmark-charcoal.svg", "logos", "charcoal", "brand/logos/wordmark-charcoal.svg", "image/svg+xml"),
    ("Wordmark Vanilla", "wordmark-vanilla.svg", "logos", "vanilla", "brand/logos/wordmark-vanilla.svg", "image/svg+xml"),
    ("Brandmark Glass", "brandmark-glass.png", "logos", "glass", "brand/logos/brandmark-glass.png", "image/png"),
    ("Studio Portrait", "studio-portrait.jpg", "images", None, "brand/images/studio-portrait.jpg", "image/jpeg"),
]


def clear_brand_tables(brand_id: str) -> None:
    conn = get_conn()
    try:
        for table in BRAND_TABLES:
            conn.execute(f"DELETE FROM {table} WHERE brand_id = ?", (brand_id,))
        conn.commit()
    finally:
        conn.close()


def seed_brand(brand_id: str) -> None:
    now = now_iso()
    conn = get_conn()
    try:
        conn.executemany(
            """
            INSERT INTO brand_colors
                (id, brand_id, name, slug, hex_value, rgb_value, color_group, color_role, text_color,
                 usage_guidelines, css_variable_name, sort_order)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (new_id(), brand_id, name, slug, hex_value, rgb, group, role, text, usage, f"--color-{slug}", i)
                for i, (name, slug, hex_value, rgb, group, role, text, usage) in enumerate(SEED_COLORS)
            ],
        )
        conn.executemany(
            """
            INSERT INTO brand_guidelines (id, brand_id, title, slug, guideline_type, url, category, is_primary, sort_order)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (new_id(), brand_id, title, slug, kind, url, category, primary, i)
                for i, (title, slug, kind, url, category, primary) in enumerate(SEED_GUIDELINES)
            ],
        )
        conn.executemany(
            "INSERT INTO brand_documents (id, brand_id, title, category, section, content, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            [(new_id(), brand_id, title, category, section, content, now) for title, category, section, content in SEED_DOCUMENTS],
        )
        conn.executemany(
            """
            INSERT INTO brand_assets (id, brand_id, name, filename, category, variant, storage_path, mime_type, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (new_id(), brand_id, name, filename, category, variant, path, mime, to_json({}), now)
                for name, filename, category, variant, path, mime in SEED_ASSETS
            ],
        )
        conn.commit()
    finally:
        conn.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed brand data for demos/tests.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear the brand tables before inserting seed rows.",
    )
    parser.add_argument("--brand-id", default=DEFAULT_BRAND_ID, help="Brand to seed (default: DEFAULT_BRAND_ID).")
    args = parser.parse_args()

    init_db()
    if args.reset:
        clear_brand_tables(args.brand_id)
        print("Cleared existing brand data.")

    seed_brand(args.brand_id)
    print(
        f"  added: {len(SEED_COLORS)} colours, {len(SEED_GUIDELINES)} guidelines, "
        f"{len(SEED_DOCUMENTS)} documents, {len(SEED_ASSETS)} assets"
    )

    tags = ensure_default_tags(args.brand_id)
    print(f"  tags: {len(tags)}")

    key = create_api_key(args.brand_id, "Seed key", created_by="seed script")
    print(f"  MCP API key (shown once): {key['key']}")

    print("Done.")


if __name__ == "__main__":
    main()
