# users/models.py
from django.db import models


class User(models.Model):
    """
    Author of blog posts. Ids come from the fixture source, so they are
    assigned explicitly rather than generated.
    """
    id = models.IntegerField(primary_key=True)
    name = models.CharField(max_length=255)
    username = models.CharField(max_length=150, db_index=True)
    email = models.EmailField()

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return self.username
