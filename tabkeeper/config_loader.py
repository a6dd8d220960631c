from dotenv import load_dotenv


def load_config(env_file: str = ".env") -> bool:
    """Loads a .env file into the process environment, if one exists."""
    return load_dotenv(env_file)
