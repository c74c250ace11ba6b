from sheet_records.cli import app

app()
