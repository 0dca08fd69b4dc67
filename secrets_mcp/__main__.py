"""Allow ``python -m secrets_mcp`` to start the stdio server."""

from secrets_mcp.stdio import main

if __name__ == "__main__":
    main()
