from app.database.database import Base
from app.database.migration import LATE_COLUMNS


def test_late_columns_match_the_models():
    for table_name, columns in LATE_COLUMNS.items():
        table = Base.metadata.tables[table_name]
        for column_name in columns:
            assert column_name in table.c, f"{table_name}.{column_name}"
