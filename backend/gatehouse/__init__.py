"""Gatehouse: amenity slot capacity and visitor pass lifecycle engine."""
