"""Disk layout inspection, planning and mutation."""
