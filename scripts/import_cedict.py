"""
Fill char_base pinyin and gloss for single characters from CC-CEDICT.

Existing values are kept unless --overwrite is given; characters missing from
char_base are inserted with just their codepoint, readings and gloss.

Usage:
  DATABASE_URL=postgresql+psycopg://... python scripts/import_cedict.py
  python scripts/import_cedict.py --cedict ./cedict_ts.u8 --dry-run
"""

from __future__ import annotations

import argparse
import gzip
import logging
import sys
from pathlib import Path

import requests
from sqlalchemy import select

from dong_chinese import config
from dong_chinese.cedict import gloss_for, index_by_headword, iter_entries, readings_for
from dong_chinese.db import init_db, make_engine, make_session_factory, utcnow
from dong_chinese.schema import CharBase

logger = logging.getLogger("import_cedict")

CEDICT_DOWNLOAD_URL = "https://www.mdbg.net/chinese/export/cedict/cedict_1_0_ts_utf-8_mdbg.txt.gz"
BATCH_SIZE = 1000


def download_if_needed(cache_dir: Path, force: bool = False) -> Path:
    cache_dir.mkdir(parents=True, exist_ok=True)
    txt_path = cache_dir / "cedict_ts.u8"
    if txt_path.exists() and not force:
        return txt_path

    logger.info("downloading CC-CEDICT from %s", CEDICT_DOWNLOAD_URL)
    resp = requests.get(CEDICT_DOWNLOAD_URL, timeout=60)
    resp.raise_for_status()
    txt_path.write_bytes(gzip.decompress(resp.content))
    return txt_path


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("--cedict", type=Path, help="Local cedict_ts.u8 (downloaded when omitted)")
    ap.add_argument("--cache-dir", type=Path, default=Path(".cache/cedict"), help="Cache directory for the download")
    ap.add_argument("--force-download", action="store_true", help="Redownload CC-CEDICT even if cached")
    ap.add_argument("--overwrite", action="store_true", help="Replace existing pinyin/gloss values")
    ap.add_argument("--dry-run", action="store_true", help="Report counts without writing")
    args = ap.parse_args()

    config.configure_logging()

    path = args.cedict or download_if_needed(args.cache_dir, force=args.force_download)
    with open(path, "r", encoding="utf-8") as f:
        index = index_by_headword(iter_entries(f))
    singles = {head: entries for head, entries in index.items() if len(head) == 1}
    logger.info("parsed %d headwords (%d single characters) from %s", len(index), len(singles), path)

    engine = make_engine()
    init_db(engine)
    Session = make_session_factory(engine)

    inserted = updated = 0
    with Session() as db:
        existing = {row.character: row for row in db.scalars(select(CharBase))}
        for n, (char, entries) in enumerate(sorted(singles.items()), start=1):
            pinyin = readings_for(entries) or None
            gloss = gloss_for(entries)

            row = existing.get(char)
            if row is None:
                db.add(CharBase(
                    character=char,
                    codepoint=f"U+{ord(char):04X}",
                    pinyin=pinyin,
                    gloss=gloss,
                ))
                inserted += 1
            else:
                changed = False
                if pinyin and (args.overwrite or not row.pinyin):
                    row.pinyin = pinyin
                    changed = True
                if gloss and (args.overwrite or not row.gloss):
                    row.gloss = gloss
                    changed = True
                if changed:
                    row.updated_at = utcnow()
                    updated += 1

            if n % BATCH_SIZE == 0 and not args.dry_run:
                db.commit()

        if args.dry_run:
            db.rollback()
        else:
            db.commit()

    logger.info("inserted %d, updated %d%s", inserted, updated, " (dry run)" if args.dry_run else "")
    return 0


if __name__ == "__main__":
    sys.exit(main())
