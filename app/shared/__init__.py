"""Cross-domain helpers: errors, time handling, validation"""
