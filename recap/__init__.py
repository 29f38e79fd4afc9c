"""Kizu Recap - photo recap videos with fades and background music."""
