"""Tests for the HabitXP integration."""
