"""Search comboboxes for related-entity pickers."""
