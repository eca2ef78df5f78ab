from docsync.cli import app

app(prog_name="docsync")
