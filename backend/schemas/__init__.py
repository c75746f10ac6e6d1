"""schemas — itinerary, memory and planner records shared across Trip Brain."""
