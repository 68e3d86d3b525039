from grharvest.scraper.workflow import _cli_entrypoint

if __name__ == "__main__":
    # Usage: python main.py <blog-id> [--language spa] [--format ...] [--sort ...]
    _cli_entrypoint()
