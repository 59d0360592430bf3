"""Avatar generation: Gemini transform, normalization, pipeline and regeneration."""
