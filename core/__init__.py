"""core/ -- Kernel shared by every layer. Imports nothing from auth/."""
