"""FiQuest progression and reward engine."""
