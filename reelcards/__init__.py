"""ReelCards: pack opening, trade-ups and movie badges for the community site."""
