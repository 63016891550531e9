"""Real-time chat: sessions, thread rooms, persistence and AI replies."""
