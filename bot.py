#!/usr/bin/env python3
"""
Lobby Watch Bot - Entry Point

Telegram bot that watches game lobbies for joins and player-count thresholds.
The actual implementation is in the lobbybot package.
"""

if __name__ == "__main__":
    from lobbybot import main
    main()
