from django import forms
from django.contrib.auth.forms import UserCreationForm, UserChangeForm
from django.core.exceptions import ValidationError

from .models import CustomUser, StudentProfile
from .validators import digits_only


class CustomUserCreationForm(UserCreationForm):
    """
    Admin "add user" form. Email is the login field.
    """

    password1 = forms.CharField(
        label="Password",
        strip=False,
        widget=forms.PasswordInput(attrs={'autocomplete': 'new-password'}),
    )
    password2 = forms.CharField(
        label="Confirm Password",
        strip=False,
        widget=forms.PasswordInput(attrs={'autocomplete': 'new-password'}),
    )

    class Meta:
        model = CustomUser
        fields = ('email', 'full_name', 'phone', 'department')

    def clean_password2(self):
        pwd1 = self.cleaned_data.get("password1")
        pwd2 = self.cleaned_data.get("password2")

        if pwd1 and pwd2 and pwd1 != pwd2:
            raise ValidationError("Your passwords do not match.")
        return pwd2

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_password(self.cleaned_data["password1"])

        if commit:
            user.save()
        return user


class CustomUserChangeForm(UserChangeForm):
    class Meta:
        model = CustomUser
        fields = (
            'email',
            'full_name',
            'phone',
            'department',
            'is_active',
            'is_staff',
            'is_superuser',
        )


class StudentProfileForm(forms.ModelForm):
    """Keeps parent numbers in the 10-digit form the apply check expects."""

    class Meta:
        model = StudentProfile
        fields = '__all__'

    def _clean_phone(self, field, required):
        value = self.cleaned_data.get(field, '')
        if not value:
            if required:
                raise ValidationError("A parent phone number is required.")
            return ''
        digits = digits_only(value)
        if len(digits) != 10:
            raise ValidationError("Enter a 10-digit phone number.")
        return digits

    def clean_parent_phone(self):
        return self._clean_phone('parent_phone', required=True)

    def clean_parent_phone_secondary(self):
        return self._clean_phone('parent_phone_secondary', required=False)
