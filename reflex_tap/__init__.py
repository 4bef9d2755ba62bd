"""ReflexTap: randomized-delay reaction time game."""
