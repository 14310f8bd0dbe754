import logging
import sys
from pathlib import Path

from dbschema_sync import (
    ConnectionConfig,
    MetadataSyncer,
    database_from_yaml,
    database_to_yaml,
    instance_to_yaml,
)

# Configuration: DBSCHEMA_SYNC_HOST / PORT / USERNAME / PASSWORD / DATABASE
ENGINE = "POSTGRES"
OUTPUT_DIR = Path(".test_output/example")

logging.basicConfig(level=logging.INFO, stream=sys.stderr)

config = ConnectionConfig.from_env(ENGINE)

with MetadataSyncer(config) as syncer:
    instance = syncer.sync_instance()
    database = syncer.sync_database()

# Serialise to YAML file(s)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

(OUTPUT_DIR / "instance.yaml").write_text(instance_to_yaml(instance), encoding="utf-8")
out_file = OUTPUT_DIR / f"{database.name}.yaml"
out_file.write_text(database_to_yaml(database, exclude_volatile=True), encoding="utf-8")
print(f"  Wrote {out_file}", file=sys.stderr)

for schema in database.schemas:
    print(f"{schema.name or '(default)'}: {len(schema.tables)} table(s)", file=sys.stderr)

# Deserialise from YAML and compare against the live snapshot
stored = database_from_yaml(out_file.read_text(encoding="utf-8"))
live = database_to_yaml(database, exclude_volatile=True)
if database_to_yaml(stored, exclude_volatile=True) != live:
    print("stored snapshot differs from live database", file=sys.stderr)
