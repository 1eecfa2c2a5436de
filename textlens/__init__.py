"""textlens image-to-text extraction service.

Enhances uploaded photos for OCR, recognizes them with Tesseract,
and cleans the recognized text before storing and returning it.
"""
