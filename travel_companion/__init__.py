"""Travel companion: chat-driven trip planning with structured itineraries."""
