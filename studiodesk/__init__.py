"""StudioDesk - booking lifecycle and notification scheduling for photo studios"""
