"""Command line interface for checking configuration loading"""
from . import settings_conf

SECRET_KEYS = {'jwt_secret', 'gemini_api_key'}

def mask(key: str, value) -> str:
    """Hide secrets, showing only whether they are set"""
    if key in SECRET_KEYS:
        return '<set>' if value else '<not set>'
    return str(value)

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in sorted(settings_conf.items()):
        print(f"{key}: {mask(key, value)}")

if __name__ == "__main__":
    main()
