from passport_cleaner import cli

if __name__ == "__main__":
    cli.app()
