"""Supabase storage adapter."""
