"""HENCHMAN identity constants."""

__version__ = "0.3.0"
__codename__ = "HENCHMAN"
__tagline__ = "Meetings end. Minions begin."

BANNER = r"""
  _   _ _____ _   _  ____ _   _ __  __    _    _   _
 | | | | ____| \ | |/ ___| | | |  \/  |  / \  | \ | |
 | |_| |  _| |  \| | |   | |_| | |\/| | / _ \ |  \| |
 |  _  | |___| |\  | |___|  _  | |  | |/ ___ \| |\  |
 |_| |_|_____|_| \_|\____|_| |_|_|  |_/_/   \_\_| \_|
"""
