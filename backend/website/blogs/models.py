from django.db import models

from users.models import User


class Post(models.Model):
    """
    Blog post authored by a fixture user. Listed newest-first, which for
    fixture data means by descending id.
    """
    id = models.IntegerField(primary_key=True)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='posts')
    title = models.CharField(max_length=255)
    body = models.TextField()

    def __str__(self):
        return self.title

    class Meta:
        ordering = ['-id']
