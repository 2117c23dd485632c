"""Example usage of the tagged_tables library."""

from pathlib import Path

from tagged_tables import DatabaseManager, RowManager, SearchOptions

# Create a data directory for storage
data_dir = Path("./example_data")

databases = DatabaseManager(data_dir)
db = databases.create("Reading List")
schema = databases.schema
rows = RowManager(schema)

# Add typed columns to the default entries table
schema.create_column(db.id, "entries", "pages", "integer")
schema.create_column(db.id, "entries", "genre", "multi_tag")
schema.create_column(db.id, "entries", "score", "rating")
for tag in ["fantasy", "history", "poetry", "science"]:
    schema.register_tag(db.id, "entries", "genre", tag)

books = [
    {"title": "The Hobbit", "pages": 310, "genre": "fantasy", "score": 5},
    {"title": "SPQR", "pages": 608, "genre": "history", "score": 4},
    {"title": "The Odyssey", "pages": 541, "genre": "poetry history", "score": 5},
    {"title": "Cosmos", "pages": 396, "genre": "science", "score": 4},
]

print("Creating rows...")
for book in books:
    row = rows.create_row(db.id, "entries", book)
    print(f"  Created: [{row['id']}] {row['title']}")

for query in ["pages:>500", "genre:history !genre:poetry", "score:5 OR cosmos", "i1:/^The/"]:
    result = rows.search_rows(db.id, "entries", SearchOptions(query=query, sort="title"))
    titles = ", ".join(row["title"] for row in result.rows)
    print(f"\n{query!r}: {result.filtered} of {result.total}")
    print(f"  {titles}")

print(f"\nFiles created in {data_dir}:")
for f in sorted(data_dir.iterdir()):
    print(f"  {f.name} ({f.stat().st_size} bytes)")

print("\nYou can keep working with this data from the command line:")
print(f"  tagged-tables --data-dir {data_dir} search {db.id} entries genre:fantasy")
