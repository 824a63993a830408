from django import forms

from shops.models import Shop


class RegisterReportFilterForm(forms.Form):
    shop = forms.ModelChoiceField(queryset=Shop.objects.none(), required=False)
    start_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type':'date'}))
    end_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type':'date'}))

    def __init__(self, *args, org_id=None, **kwargs):
        super().__init__(*args, **kwargs)
        shops = Shop.objects.filter(is_active=True).order_by('display_order', 'name')
        if org_id is not None:
            shops = shops.filter(organization_id=org_id)
        self.fields['shop'].queryset = shops

    def clean(self):
        cleaned = super().clean()
        sd = cleaned.get('start_date')
        ed = cleaned.get('end_date')
        if sd and ed and sd > ed:
            raise forms.ValidationError('Start date must be on or before end date.')
        return cleaned
